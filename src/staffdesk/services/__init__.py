"""
Collaborator plumbing used by the lifecycles.

- **collaborators.py**: ``RoleGateway`` and ``Notifier`` protocols and the
  ``bounded`` timeout wrapper
- **side_effects.py**: Best-effort role changes and notices with failure
  accounting
- **case_locks.py**: Per-case asyncio locks
"""
