"""
Application configuration.

- **app_configuration.py**: YAML-backed ``AppConfig`` and the shared
  ``app_config`` instance
- **workflow_settings.py**: Typed views over the tickets, infractions, offices,
  promotions and sweeps sections, each with built-in defaults
- **rank_table.py**: The default staff hierarchy, lowest rank first
"""
