import logging
import sys
from pathlib import Path
from typing import Optional, Union


class _ThirdPartyNoiseFilter(logging.Filter):
    """
    Keep our own loggers at the configured level, but only let
    third-party libraries (pymongo, apscheduler, uvicorn) through at WARNING+.
    """

    OWN_PREFIXES = ("core.", "routes.", "models.", "main", "ensure_indexes", "__main__")

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith(self.OWN_PREFIXES):
            return True
        return record.levelno >= logging.WARNING


def setup_logging(level: Union[str, int] = "INFO", log_file: Optional[Union[str, Path]] = None) -> None:
    """
    Configure the root logger with a console handler and, if `log_file`
    is given, a file handler that receives everything.

    Call this once, before the first log line.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Remove any pre-existing handlers to avoid duplicates on reload.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(level)
    ch.setFormatter(fmt)
    ch.addFilter(_ThirdPartyNoiseFilter())
    root.addHandler(ch)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_file), encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(fmt)
        root.addHandler(fh)

    # Route warnings.warn(...) into logging as 'py.warnings'
    logging.captureWarnings(True)
