"""
Case persistence.

- **case_store.py**: ``CaseStore`` protocol consumed by the lifecycles
- **sqlite_case_store.py**: aiosqlite implementation storing one JSON document
  per case
- **case_serialization.py**: Record to JSON conversion
- **db_connection.py**: Single long-lived connection with a serialized writer
- **db_schema.py**: Table and index creation
"""
