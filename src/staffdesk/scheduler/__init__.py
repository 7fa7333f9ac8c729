"""
Time-driven reconciliation.

- **reconciliation_scheduler.py**: Tick entry points for suspension expiry,
  ticket inactivity, scheduled intents and draft purging, each guarded
  against overlapping runs
- **periodic_task.py**: In-process interval runner for a single tick
"""
