"""
# Database Management Module

This module provides the **MongoDB infrastructure** for the Study SRS engine. The
`DatabaseManager` owns the **Motor** async client, and every service reaches its collections
through the module-level `db_manager` singleton.

## Architecture Overview

```
┌──────────────────────┐      ┌───────────────────────────┐
│  Services            │─────▶│  DatabaseManager          │
│  (review records,    │      │  (Singleton)              │
│   flashcards, queue) │      └─────────────┬─────────────┘
└──────────────────────┘                    │
                              ┌─────────────▼─────────────┐
                              │  Motor connection pool    │
                              └───────────────────────────┘
```

## Key Features

- **Async Initialization**: `connect()` pings the server with exponential backoff (1s, 2s, 4s).
- **Timezone-aware documents**: the client is created with `tz_aware=True`, so every datetime
  read back from the store is UTC-aware and compares cleanly with `datetime.now(timezone.utc)`.
- **Health Check**: `health_check()` for readiness probes and the CLI.

## Usage Examples

```python
from study_srs.database import db_manager

await db_manager.connect()
records = db_manager.get_collection("review_records")
record = await records.find_one({"_id": record_id})
await db_manager.disconnect()
```

## Thread Safety

The manager is designed for **asyncio** and is **not thread-safe**. All methods must be
called from the same event loop.

## Module Attributes

Attributes:
    db_logger (Logger): Logger for database operations (`[DATABASE]`).
    perf_logger (Logger): Logger for connection timings (`[DB_PERFORMANCE]`).
    health_logger (Logger): Logger for health checks (`[DB_HEALTH]`).
    db_manager (DatabaseManager): Global singleton instance.
"""

import asyncio
import time
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from study_srs.config import settings
from study_srs.managers.logging_manager import get_logger

db_logger = get_logger(prefix="[DATABASE]")
perf_logger = get_logger(prefix="[DB_PERFORMANCE]")
health_logger = get_logger(prefix="[DB_HEALTH]")


class DatabaseManager:
    """
    Manages the MongoDB connection and hands out collections.

    **Lifecycle:**
    1. **Instantiation**: `client=None`, `database=None`.
    2. **Connection**: `connect()` establishes the pool.
    3. **Operations**: `get_collection()` for queries.
    4. **Shutdown**: `disconnect()` closes the pool.

    Attributes:
        client (`Optional[AsyncIOMotorClient]`): Motor client, `None` until connected.
        database (`Optional[AsyncIOMotorDatabase]`): Selected database, `None` until connected.
    """

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self._connection_retries = 3

    async def connect(self):
        """
        Establish the MongoDB connection with exponential backoff retry logic.

        Up to three attempts are made (waiting 1s, then 2s). Calling `connect()` while a client
        is already set is a no-op.

        Raises:
            `ServerSelectionTimeoutError`: MongoDB unreachable after all attempts.
            `ConnectionFailure`: Authentication failed or connection refused.
        """
        if self.client is not None and self.database is not None:
            db_logger.debug("connect() called on an already connected manager")
            return

        start_time = time.time()
        db_logger.info("Starting MongoDB connection process")

        for attempt in range(self._connection_retries):
            attempt_start = time.time()
            try:
                db_logger.info("Connection attempt %d/%d to MongoDB", attempt + 1, self._connection_retries)
                db_logger.info(
                    "MongoDB connection config - URL: %s, Database: %s, MaxPool: %d, MinPool: %d",
                    settings.MONGODB_URL,
                    settings.MONGODB_DATABASE,
                    settings.MONGODB_MAX_POOL_SIZE,
                    settings.MONGODB_MIN_POOL_SIZE,
                )

                self.client = AsyncIOMotorClient(
                    settings.mongodb_connection_string,
                    serverSelectionTimeoutMS=settings.MONGODB_SERVER_SELECTION_TIMEOUT,
                    connectTimeoutMS=settings.MONGODB_CONNECTION_TIMEOUT,
                    maxPoolSize=settings.MONGODB_MAX_POOL_SIZE,
                    minPoolSize=settings.MONGODB_MIN_POOL_SIZE,
                    tz_aware=True,
                )
                self.database = self.client[settings.MONGODB_DATABASE]

                ping_start = time.time()
                await self.client.admin.command("ping")
                ping_duration = time.time() - ping_start

                perf_logger.info(
                    "MongoDB connection established in %.3fs (ping: %.3fs)", time.time() - start_time, ping_duration
                )
                db_logger.info("Connected to MongoDB database: %s", settings.MONGODB_DATABASE)
                return

            except (ServerSelectionTimeoutError, ConnectionFailure) as e:
                perf_logger.warning("Connection attempt %d failed after %.3fs", attempt + 1, time.time() - attempt_start)
                db_logger.warning(
                    "Failed to connect to MongoDB (attempt %d/%d): %s", attempt + 1, self._connection_retries, e
                )
                if attempt == self._connection_retries - 1:
                    db_logger.error("All connection attempts failed after %.3fs", time.time() - start_time)
                    self.client = None
                    self.database = None
                    raise

                backoff_time = 2**attempt
                db_logger.info("Waiting %.1fs before retry (exponential backoff)", backoff_time)
                await asyncio.sleep(backoff_time)

    async def disconnect(self):
        """Close the Motor client. Safe to call when not connected."""
        if self.client:
            self.client.close()
            self.client = None
            self.database = None
            db_logger.info("Disconnected from MongoDB")
        else:
            db_logger.warning("Disconnect called but no active MongoDB connection found")

    async def health_check(self) -> bool:
        """
        Verify the connection with a lightweight ping.

        Returns:
            `bool`: `True` if the server answered, `False` otherwise (never raises).
        """
        if not self.client:
            health_logger.warning("Health check failed: no MongoDB client initialized")
            return False
        try:
            start = time.time()
            await self.client.admin.command("ping")
            health_logger.debug("MongoDB ping succeeded in %.3fs", time.time() - start)
            return True
        except PyMongoError as e:
            health_logger.error("MongoDB health check failed: %s", e)
            return False

    def get_collection(self, collection_name: str) -> AsyncIOMotorCollection:
        """
        Retrieve a collection from the connected database.

        Args:
            collection_name (`str`): Name of the collection, e.g. `"review_records"`.

        Raises:
            `ConnectionError`: If `connect()` has not been called.
        """
        if self.database is None:
            raise ConnectionError("Database not connected. Call db_manager.connect() first.")
        return self.database[collection_name]


db_manager = DatabaseManager()
