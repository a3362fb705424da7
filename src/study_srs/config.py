"""
# Configuration Management Module

This module provides the configuration system for the Study SRS engine. It is built on
**Pydantic Settings** and loads values from the environment, with an optional config file
for local development.

## Configuration Loading Hierarchy

```
┌─────────────────────────────────────────────────────────────┐
│         Configuration Loading Hierarchy                     │
│  (Higher layers override lower layers)                      │
├─────────────────────────────────────────────────────────────┤
│  1. Environment Variables (HIGHEST PRIORITY)                │
├─────────────────────────────────────────────────────────────┤
│  2. STUDY_SRS_CONFIG_PATH                                   │
│     - Custom config file path from env var                  │
├─────────────────────────────────────────────────────────────┤
│  3. .srs File (Project Root)                                │
├─────────────────────────────────────────────────────────────┤
│  4. .env File (Project Root)                                │
├─────────────────────────────────────────────────────────────┤
│  5. Default Values (LOWEST PRIORITY)                        │
└─────────────────────────────────────────────────────────────┘
```

## Configuration Groups

| Group | Purpose |
|-------|---------|
| **Database (MongoDB)** | Connection URL, database name, timeouts, credentials |
| **Logging** | Log level and line format |
| **SRS Policy** | Ease factor bounds, interval steps, mastery thresholds |
| **Flashcard Policy** | Flashcard-specific mastery and reviewing thresholds |
| **Due Queue** | Page sizes and weak-topic prioritization knobs |
| **Concurrency & Batching** | Optimistic-concurrency attempts, bulk write chunk size |

### SRS Policy

The mastery thresholds are a policy surface rather than fixed constants. Two sets exist:

```python
SRS_MASTERED_INTERVAL_DAYS: int = 16        # Generic review records
SRS_MASTERED_MIN_REPETITIONS: int = 3
FLASHCARD_MASTERED_INTERVAL_DAYS: int = 31  # Flashcards: interval > 30
FLASHCARD_REVIEWING_MIN_INTERVAL_DAYS: int = 2  # Flashcards: interval > 1
```

## Usage Example

```python
from study_srs.config import settings

print(settings.MONGODB_DATABASE)
print(settings.SRS_MASTERED_INTERVAL_DAYS)
```

## Module Attributes

Attributes:
    settings (Settings): Global settings instance, created at import time.
    CONFIG_PATH (Optional[str]): Resolved configuration file, or `None` in env-only mode.
"""

import os
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv
from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Constants ---
SRS_FILENAME: str = ".srs"
DEFAULT_ENV_FILENAME: str = ".env"
CONFIG_ENV_VAR: str = "STUDY_SRS_CONFIG_PATH"
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent


# --- Config file discovery (no logging) ---
def get_config_path() -> Optional[str]:
    """
    Determines the configuration file path based on a predefined precedence order.

    1.  **Environment Variable**: `STUDY_SRS_CONFIG_PATH` (if set and file exists).
    2.  **SRS Config**: `.srs` file in the project root directory.
    3.  **Dotenv Config**: `.env` file in the project root directory.
    4.  **Fallback**: `None`, which means environment-variable-only mode.

    Returns:
        Optional[str]: The absolute path to the configuration file, or `None` if not found.
    """
    env_path: Optional[str] = os.environ.get(CONFIG_ENV_VAR)
    if env_path and os.path.exists(env_path):
        return env_path
    srs_path: Path = PROJECT_ROOT / SRS_FILENAME
    if srs_path.exists():
        return str(srs_path)
    env_path_file: Path = PROJECT_ROOT / DEFAULT_ENV_FILENAME
    if env_path_file.exists():
        return str(env_path_file)
    return None


CONFIG_PATH: Optional[str] = get_config_path()
if CONFIG_PATH:
    load_dotenv(dotenv_path=CONFIG_PATH, override=False)


class Settings(BaseSettings):
    """
    Application configuration settings model.

    **Configuration Groups:**
    *   **Database**: MongoDB connection details.
    *   **Logging**: Level and format of the application logs.
    *   **SRS / Flashcard Policy**: Numbers fed into the transition function.
    *   **Due Queue**: Pagination limits and weak-topic prioritization.
    *   **Concurrency**: Conditional-write attempts and batch sizes.

    **Validation:**
    Numeric knobs must be positive, the MongoDB URL cannot be empty, and the minimum ease
    factor cannot exceed the default ease factor.
    """

    model_config = SettingsConfigDict(
        env_file=CONFIG_PATH if CONFIG_PATH else None,
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )

    # MongoDB configuration
    MONGODB_URL: str = "mongodb://127.0.0.1:27017"
    MONGODB_DATABASE: str = "study_platform"
    MONGODB_CONNECTION_TIMEOUT: int = 10000
    MONGODB_SERVER_SELECTION_TIMEOUT: int = 5000
    MONGODB_MAX_POOL_SIZE: int = 50
    MONGODB_MIN_POOL_SIZE: int = 5

    # Authentication (optional)
    MONGODB_USERNAME: Optional[str] = None
    MONGODB_PASSWORD: Optional[SecretStr] = None

    # Logging configuration
    DEFAULT_LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    # SRS policy for generic review records
    SRS_DEFAULT_EASE_FACTOR: float = 2.5
    SRS_MIN_EASE_FACTOR: float = 1.3
    SRS_FAIL_EASE_PENALTY: float = 0.2
    SRS_FAIL_INTERVAL_DAYS: int = 1
    SRS_FIRST_INTERVAL_DAYS: int = 1
    SRS_SECOND_INTERVAL_DAYS: int = 6
    SRS_MASTERED_INTERVAL_DAYS: int = 16
    SRS_MASTERED_MIN_REPETITIONS: int = 3
    SRS_MAX_INTERVAL_DAYS: Optional[int] = None  # None = unbounded

    # Flashcard policy (same algorithm, own thresholds)
    FLASHCARD_MASTERED_INTERVAL_DAYS: int = 31
    FLASHCARD_MASTERED_MIN_REPETITIONS: int = 0
    FLASHCARD_REVIEWING_MIN_INTERVAL_DAYS: int = 2

    # Due queue
    SRS_DUE_QUEUE_DEFAULT_LIMIT: int = 50
    SRS_DUE_QUEUE_MAX_LIMIT: int = 500
    SRS_WEAK_TOPICS_LIMIT: int = 3
    SRS_WEAK_TOPIC_MIN_ANSWERS: int = 1

    # Concurrency and batching
    SRS_CAS_MAX_ATTEMPTS: int = 3
    SRS_BATCH_WRITE_SIZE: int = 500  # Store batch-size ceiling

    # Flashcard decks
    SRS_VERIFY_DECK_OWNERSHIP: bool = False

    # Collections
    REVIEW_RECORDS_COLLECTION: str = "review_records"
    FLASHCARDS_COLLECTION: str = "flashcards"
    FLASHCARD_INTERACTIONS_COLLECTION: str = "flashcard_interactions"
    FLASHCARD_DECKS_COLLECTION: str = "flashcard_decks"
    ERROR_NOTEBOOK_ENTRIES_COLLECTION: str = "error_notebook_entries"
    ERROR_NOTEBOOKS_COLLECTION: str = "error_notebooks"
    USER_STATISTICS_COLLECTION: str = "user_statistics"
    QUESTIONS_COLLECTION: str = "questions"

    @field_validator("MONGODB_URL", "MONGODB_DATABASE", mode="before")
    @classmethod
    def no_empty_urls(cls, v: Any, info: Any) -> Any:
        """
        Validates that the MongoDB URL and database name are not empty.

        Raises:
            ValueError: If the value is empty or whitespace.
        """
        if not v or not str(v).strip():
            raise ValueError(f"{info.field_name} must be set via environment or .srs and not empty!")
        return v

    @field_validator(
        "SRS_FIRST_INTERVAL_DAYS",
        "SRS_SECOND_INTERVAL_DAYS",
        "SRS_FAIL_INTERVAL_DAYS",
        "SRS_MASTERED_INTERVAL_DAYS",
        "FLASHCARD_MASTERED_INTERVAL_DAYS",
        "FLASHCARD_REVIEWING_MIN_INTERVAL_DAYS",
        "SRS_DUE_QUEUE_DEFAULT_LIMIT",
        "SRS_DUE_QUEUE_MAX_LIMIT",
        "SRS_CAS_MAX_ATTEMPTS",
        "SRS_BATCH_WRITE_SIZE",
        mode="before",
    )
    @classmethod
    def validate_positive_integers(cls, v: Any, info: Any) -> int:
        """
        Validates that numeric settings are positive integers.

        Raises:
            ValueError: If the value is not a positive integer.
        """
        value = int(v)
        if value <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer")
        return value

    @field_validator("SRS_BATCH_WRITE_SIZE")
    @classmethod
    def validate_batch_ceiling(cls, v: int) -> int:
        """Batch writes are chunked at no more than 500 operations."""
        if v > 500:
            raise ValueError("SRS_BATCH_WRITE_SIZE must not exceed 500")
        return v

    @model_validator(mode="after")
    def validate_ease_bounds(self) -> "Settings":
        """Ensure the ease floor does not sit above the starting ease."""
        if self.SRS_MIN_EASE_FACTOR <= 0:
            raise ValueError("SRS_MIN_EASE_FACTOR must be positive")
        if self.SRS_MIN_EASE_FACTOR > self.SRS_DEFAULT_EASE_FACTOR:
            raise ValueError("SRS_MIN_EASE_FACTOR must not exceed SRS_DEFAULT_EASE_FACTOR")
        if self.SRS_DUE_QUEUE_DEFAULT_LIMIT > self.SRS_DUE_QUEUE_MAX_LIMIT:
            raise ValueError("SRS_DUE_QUEUE_DEFAULT_LIMIT must not exceed SRS_DUE_QUEUE_MAX_LIMIT")
        return self

    @property
    def mongodb_connection_string(self) -> str:
        """Connection string with credentials injected when both are configured."""
        if self.MONGODB_USERNAME and self.MONGODB_PASSWORD:
            username = quote_plus(self.MONGODB_USERNAME)
            password = quote_plus(self.MONGODB_PASSWORD.get_secret_value())
            return f"mongodb://{username}:{password}@{self.MONGODB_URL.replace('mongodb://', '')}"
        return self.MONGODB_URL


# Global settings instance
settings: Settings = Settings()
