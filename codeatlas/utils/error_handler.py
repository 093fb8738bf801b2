"""Error boundary for codeatlas commands.

Every click command is wrapped in ``handle_exceptions``. Known codeatlas
failures (an unreadable registry snapshot, a missing or corrupt index) are
reported in one line. Anything unexpected is logged with its traceback and
recorded in the persistent error log, whose location comes from the
``paths.error_log`` runtime setting.
"""

import traceback
from collections.abc import Callable
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Any

import click

from codeatlas.utils.logging import logger

LOG_RULE = "=" * 80


def error_log_path() -> Path:
    """Configured error log, resolved against the working directory."""
    from codeatlas.config_runtime import load_runtime_config

    return Path(load_runtime_config(".")["paths"]["error_log"])


def append_error_log(command: str, error: BaseException, log_file: Path | None = None) -> Path:
    """Append one failure record (timestamp, message, traceback) and return the log path."""
    log_file = log_file or error_log_path()
    log_file.parent.mkdir(parents=True, exist_ok=True)
    tb = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    with open(log_file, "a", encoding="utf-8") as f:
        f.write(f"\n{LOG_RULE}\n")
        f.write(f"[{datetime.now().isoformat()}] Error in command: {command}\n")
        f.write(f"{LOG_RULE}\n")
        f.write(f"{type(error).__name__}: {error}\n\n")
        f.write(tb)
        f.write(f"{LOG_RULE}\n\n")
    return log_file


def handle_exceptions(func: Callable[..., Any]) -> Callable[..., Any]:
    """Turn command failures into ClickExceptions.

    ClickExceptions pass through unchanged. CodeatlasError subclasses carry
    a message meant for the user and are not written to the error log.
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        from codeatlas.indexer.exceptions import CodeatlasError

        try:
            return func(*args, **kwargs)
        except click.ClickException:
            raise
        except CodeatlasError as e:
            logger.error(f"{func.__name__}: {e}")
            if e.details:
                logger.debug(f"{func.__name__} error details: {e.details}")
            raise click.ClickException(str(e)) from e
        except Exception as e:
            logger.opt(exception=True).error(
                "Command '{cmd}' failed: {err}",
                cmd=func.__name__,
                err=str(e),
            )
            log_file = append_error_log(func.__name__, e)
            raise click.ClickException(
                f"{type(e).__name__}: {e}\n\nFull traceback logged to: {log_file}"
            ) from e

    return wrapper
