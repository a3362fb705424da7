"""
# Database Package

The `study_srs.database` package provides the persistence layer for the scheduling engine,
built on **Motor** (async MongoDB driver).

## Core Components

- **`manager`**: The `DatabaseManager` singleton that handles the connection lifecycle.
- **`srs_indexes`**: Index definitions for review records, flashcards, interaction logs and
  error-notebook entries.

## Usage

```python
from study_srs.database import db_manager

await db_manager.connect()
records = db_manager.get_collection("review_records")
await db_manager.disconnect()
```

## Module Attributes

Attributes:
    db_manager (DatabaseManager): The global singleton instance for database access.
    DatabaseManager (class): The manager class (exported for type hinting).
"""

from study_srs.database.manager import DatabaseManager, db_manager

__all__ = ["DatabaseManager", "db_manager"]
