import logging
from pprint import pformat
from typing import Any, TextIO

from pydantic import BaseModel

from fire_enrich.models import ConversationMessage

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def format_message(message: ConversationMessage) -> str:
    """One-line rendering of a conversation log entry."""
    parts = [f"[{message.type.value}]"]
    if message.row_index is not None:
        parts.append(f"row {message.row_index + 1}:")
    parts.append(message.message)
    if message.source_url:
        parts.append(f"({message.source_url})")
    return " ".join(parts)


class PprintLogger:
    """A logger wrapper that pretty-prints structured messages.

    Conversation messages render on one line, other pydantic models as
    indented JSON, and remaining non-string objects through ``pformat``.
    Pass ``pprint=False`` to log ``str(msg)`` unchanged.
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    def _format(self, msg: Any, pprint: bool) -> str:
        if not pprint or isinstance(msg, str):
            return str(msg)
        if isinstance(msg, ConversationMessage):
            return format_message(msg)
        if isinstance(msg, BaseModel):
            return msg.model_dump_json(indent=2)
        return pformat(msg, width=120)

    def _log(self, level: int, msg: Any, *args: Any, pprint: bool = True, **kwargs: Any) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, self._format(msg, pprint), *args, stacklevel=3, **kwargs)

    def debug(self, msg: Any, *args: Any, pprint: bool = True, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, *args, pprint=pprint, **kwargs)

    def info(self, msg: Any, *args: Any, pprint: bool = True, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, *args, pprint=pprint, **kwargs)

    def warning(self, msg: Any, *args: Any, pprint: bool = True, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, *args, pprint=pprint, **kwargs)

    def error(self, msg: Any, *args: Any, pprint: bool = True, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, *args, pprint=pprint, **kwargs)

    def message(self, msg: ConversationMessage) -> None:
        """Log a conversation entry at a level matching its type."""
        level = logging.WARNING if msg.type.value == "warning" else logging.INFO
        self._log(level, msg)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._logger, name)


def setup_logging(name: str = "fire_enrich", level: int = logging.INFO, stream: TextIO | None = None) -> PprintLogger:
    """Configure the named logger with a stream handler and wrap it."""
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler(stream)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return PprintLogger(logger)
