import logging
import sys

from mailpilot.config import CONFIG

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def setup_logging(level: str | None = None) -> logging.Logger:
    """Configure the ``mailpilot`` logger once.

    Logs go to stderr; stdout is reserved for JSON results printed by the CLI.
    The transport logger gets its own level (``CDP_LOGGING_LEVEL``) because it
    logs every frame at DEBUG.
    """
    root = logging.getLogger("mailpilot")
    root.setLevel(_LEVELS.get((level or CONFIG.LOGGING_LEVEL).lower(), logging.INFO))

    if not any(getattr(h, "_mailpilot", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._mailpilot = True  # type: ignore[attr-defined]
        root.addHandler(handler)
        root.propagate = False

    cdp_level = getattr(logging, CONFIG.CDP_LOGGING_LEVEL, logging.WARNING)
    logging.getLogger("mailpilot.cdp.transport").setLevel(cdp_level)
    return root
