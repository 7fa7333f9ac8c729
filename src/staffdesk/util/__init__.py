"""
Shared utilities.

- **logger.py**: Console and rotating-file logging with colored output and the
  process-wide exception hook
"""
