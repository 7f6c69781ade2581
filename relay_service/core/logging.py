import logging

from rich.logging import RichHandler

logger = logging.getLogger("relay_service")

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Install a rich handler on the package logger once per process."""
    global _configured
    logger.setLevel(str(level).upper())
    if _configured:
        return
    handler = RichHandler(show_path=False, markup=False, rich_tracebacks=False)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    _configured = True
