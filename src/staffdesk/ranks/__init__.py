"""
Rank hierarchy and authority checks.

- **rank_directory.py**: Read-only lookup over ranks, categories and auxiliary
  roles, including platform role id translation
- **permission_resolver.py**: Highest-rank resolution, level and category
  gates, permission presets and the override/status-aware ``authorize``
- **escalation.py**: Fixed routing table for elevated staff reports
"""
