"""
StakePool Logging
=================

Process-wide logging for the staking engine. Console output goes through
``rich`` with highlighting for operators, tickets, amounts and lifecycle
states; a size-rotated log file can be enabled from ``.env``.

Usage:
    >>> from stakepool.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Operator #1: ACTIVE → STAKED")
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_DATE_FORMAT,
    LOG_FILE_OUTPUT,
    LOG_FORMAT,
    LOG_LEVEL,
    LOG_MAX_FILE_SIZE,
)

LOG_FILE_PATH = Path(__file__).resolve().parent.parent / "logs" / "stakepool.log"

STAKEPOOL_THEME = Theme({
    "stakepool.address":    "cyan",
    "stakepool.amount":     "bold cyan",
    "stakepool.epoch":      "bold blue",
    "stakepool.operator":   "bold magenta",
    "stakepool.ticket":     "bold white",
    "stakepool.live":       "bold green",
    "stakepool.parked":     "bold yellow",
    "stakepool.gone":       "bold red",
    "stakepool.warning":    "bold yellow",
    "stakepool.error":      "bold red",
    "stakepool.module":     "magenta",
    "stakepool.time":       "dim cyan",
})


def _complain(message: str) -> None:
    stamp = time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime())
    print(f"{stamp} stakepool.logger: {message}", file=sys.stderr)


class StakePoolHighlighter(RegexHighlighter):
    """Colours the tokens that recur in pool and registry log lines."""

    base_style = "stakepool."
    highlights = [
        r"(?P<time>^\S+ UTC)",
        r"(?P<address>\b0x[0-9a-fA-F]{8,}\b)",
        r"(?P<amount>\b\d+\s(?:units|shares|bps)\b)",
        r"(?P<epoch>\bepoch \d+\b)",
        r"(?P<operator>[Oo]perator #\d+)",
        r"(?P<ticket>[Tt]icket #\d+)",
        r"(?P<live>\b(?:ACTIVE|STAKED)\b)",
        r"(?P<parked>\b(?:UNSTAKED_CLAIMED|UNSTAKED)\b)",
        r"(?P<gone>\b(?:JAILED|EXIT)\b)",
        r"(?P<warning>\bWARNING\b)",
        r"(?P<error>\b(?:ERROR|CRITICAL)\b)",
        r"- (?P<module>stakepool[\w.]*) -",
    ]


class TerminalSafeFormatter(logging.Formatter):
    """
    Formatter that drops escape sequences and control characters.

    Operator names, addresses and versions come from callers and end up in
    log lines verbatim.
    """

    _escapes = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b[@-Z\\-_]")
    _controls = re.compile(r"[\x00-\x08\x0B-\x1F\x7F]")

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        return self._controls.sub("", self._escapes.sub("", text))


class LogManager:
    """
    Owns the root logger configuration. There is one instance per process and
    it configures handlers at most once.
    """

    _instance: Optional["LogManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "LogManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._configured = False
        return cls._instance

    @staticmethod
    def checked_format(fmt: Optional[str]) -> str:
        """Return ``fmt`` if logging accepts it, else the default format."""
        if not fmt:
            return str(LOG_FORMAT.default())
        try:
            probe = logging.LogRecord("probe", logging.INFO, "", 0, "probe", (), None)
            logging.Formatter(fmt=str(fmt), validate=True).format(probe)
        except (ValueError, KeyError, TypeError) as e:
            _complain(f"rejected LOG_FORMAT {fmt!r} ({e}), using the default")
            return str(LOG_FORMAT.default())
        return str(fmt)

    @staticmethod
    def checked_date_format(datefmt: Optional[str]) -> str:
        """Return ``datefmt`` if it contains a strftime directive, else the default."""
        if not datefmt or not re.search(r"%[a-zA-Z]", str(datefmt)):
            if datefmt:
                _complain(f"rejected LOG_DATE_FORMAT {datefmt!r}, using the default")
            return str(LOG_DATE_FORMAT.default())
        return str(datefmt)

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        """
        Install the console and file handlers on the root logger.

        Args:
            log_level: Level name; defaults to ``LOG_LEVEL`` from ``.env``.
            log_file: Rotating log path; defaults to ``logs/stakepool.log``.
            console_output: Attach a console handler.
            file_output: Attach the rotating file handler; defaults to
                ``LOG_FILE_OUTPUT``.
        """
        with self._lock:
            if self._configured:
                return

            level = getattr(logging, str(log_level or LOG_LEVEL).upper(), logging.INFO)
            formatter = TerminalSafeFormatter(
                fmt=self.checked_format(LOG_FORMAT),
                datefmt=self.checked_date_format(LOG_DATE_FORMAT) + " UTC",
            )
            formatter.converter = time.gmtime

            handlers = []
            if console_output and LOG_CONSOLE_HIGHLIGHTING:
                handlers.append(RichHandler(
                    console=Console(theme=STAKEPOOL_THEME, highlight=False),
                    highlighter=StakePoolHighlighter(),
                    keywords=[],
                    markup=False,
                    rich_tracebacks=True,
                    show_level=False,
                    show_path=False,
                    show_time=False,
                ))
            elif console_output:
                handlers.append(logging.StreamHandler(sys.stdout))

            if file_output is None:
                file_output = bool(LOG_FILE_OUTPUT)
            if file_output:
                path = Path(log_file or LOG_FILE_PATH)
                path.parent.mkdir(parents=True, exist_ok=True)
                handlers.append(logging.handlers.RotatingFileHandler(
                    path,
                    maxBytes=LOG_MAX_FILE_SIZE,
                    backupCount=LOG_BACKUP_COUNT,
                    encoding="utf-8",
                ))

            root = logging.getLogger()
            root.handlers.clear()
            root.setLevel(level)
            for handler in handlers:
                handler.setLevel(level)
                handler.setFormatter(formatter)
                root.addHandler(handler)

            self._configured = True

    @property
    def is_configured(self) -> bool:
        return self._configured

    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """Module-level accessor; every stakepool module calls this with ``__name__``."""
    return _manager.get_logger(name)


_manager.configure()
