from __future__ import annotations

import logging
from pathlib import Path
from typing import Final


DEFAULT_LOG_FORMAT: Final[str] = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_FILE_NAME: Final[str] = "quantifier.log"


def configure_logging(level: int = logging.INFO, log_dir: str | None = None) -> None:
    """Route quantifier logs to stderr and, optionally, to a run log.

    Walker progress lines and skipped-commit warnings go to stderr. With
    `[outputs] logs_dir` set they are also kept in quantifier.log there,
    one file shared by every repository of a bulk run. Calling it again
    replaces the handlers.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(Path(log_dir) / LOG_FILE_NAME, encoding="utf-8"))

    logging.basicConfig(level=level, format=DEFAULT_LOG_FORMAT, handlers=handlers, force=True)
