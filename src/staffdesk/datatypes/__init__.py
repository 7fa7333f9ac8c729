"""
Data structures shared across the engine.

- **rank_datatypes.py**: Ranks, categories, status markers and staff members
- **case_datatypes.py**: Tickets, offices, infractions, promotions, audit
  entries, scheduled intents and notices
- **sweep_datatypes.py**: Sweep and restoration reports
"""
