"""
# Logging Manager

Central place where every module obtains its logger. Loggers are plain `logging` loggers
wrapped in an adapter that prepends a component prefix, so log lines read like:

```
2026-10-17 09:12:01 | INFO     | study_srs | [ReviewRecordService] Recorded review rr_1f2e... (quality=4)
```

## Usage

```python
from study_srs.managers.logging_manager import get_logger

logger = get_logger(prefix="[DueQueueService]")
logger.info("Built due queue for user %s", user_id)
```

The root `study_srs` logger is configured once, on first use, with the level from
`settings.DEFAULT_LOG_LEVEL`. Applications that configure logging themselves can call
`configure_logging(force=False)` early or simply attach their own handlers; the manager
never adds a second handler.
"""

import logging
from typing import Any, MutableMapping, Optional, Tuple

from study_srs.config import settings

ROOT_LOGGER_NAME = "study_srs"

_configured = False


class PrefixedLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that prepends a fixed component prefix to every message."""

    def __init__(self, logger: logging.Logger, prefix: str = ""):
        super().__init__(logger, {"prefix": prefix})
        self.prefix = prefix

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        if self.prefix:
            return f"{self.prefix} {msg}", kwargs
        return msg, kwargs


def configure_logging(level: Optional[str] = None, force: bool = False) -> None:
    """
    Attach a stream handler to the package root logger.

    Args:
        level: Log level name; defaults to `settings.DEFAULT_LOG_LEVEL`.
        force: Reconfigure even if logging was already set up.
    """
    global _configured
    if _configured and not force:
        return

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel((level or settings.DEFAULT_LOG_LEVEL).upper())

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(settings.LOG_FORMAT))
        root.addHandler(handler)

    _configured = True


def get_logger(name: str = ROOT_LOGGER_NAME, prefix: str = "") -> PrefixedLoggerAdapter:
    """
    Return a prefixed logger under the package root.

    Args:
        name: Logger name. Names outside the package are nested under it.
        prefix: Text prepended to each message, e.g. `"[DATABASE]"`.
    """
    configure_logging()
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return PrefixedLoggerAdapter(logging.getLogger(name), prefix)
