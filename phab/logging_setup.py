import logging
import sys


class _ThirdPartyNoiseFilter(logging.Filter):
    """Let phab records through at the configured level, everyone else only at WARNING+."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "phab" or record.name.startswith("phab."):
            return True
        return record.levelno >= logging.WARNING


def setup_logging(level: str | int = logging.WARNING) -> None:
    """Log to stderr so stdout stays clean for tree and JSON output.

    Call once, before the first log call.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    root = logging.getLogger()
    root.setLevel(level)

    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    handler.addFilter(_ThirdPartyNoiseFilter())
    root.addHandler(handler)

    logging.captureWarnings(True)
