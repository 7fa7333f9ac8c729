"""
py-cord integration.

- **discord_gateway.py**: Role gateway, notifier and channel janitor backed by
  a Discord guild
- **reconciliation_cog.py**: Cog running the reconciliation ticks from
  ``discord.ext.tasks`` loops
"""
