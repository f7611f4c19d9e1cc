import logging
from contextlib import contextmanager

LOG_FORMAT = "%(asctime)s %(levelname)s %(current_file)s%(message)s"

_current_file = ""


class CurrentFileFilter(logging.Filter):
    """Prefix records with the localization file being worked on."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.current_file = f"[{_current_file}] " if _current_file else ""
        return True


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, CurrentFileFilter) for f in handler.filters):
            handler.addFilter(CurrentFileFilter())


@contextmanager
def working_on(rel_path: str):
    global _current_file
    previous = _current_file
    _current_file = rel_path
    try:
        yield
    finally:
        _current_file = previous


def current_file() -> str:
    return _current_file
