import logging
import os

DIM: str = "90"
ITALIC: str = "3"


def styled(text: str, *codes: str) -> str:
    """
    Wrap text in ANSI escape sequences.

    :param text: The text to style.
    :param codes: SGR codes to apply, e.g. :data:`DIM` and :data:`ITALIC`.
    :return: The styled text, followed by a reset sequence.
    """
    return "".join(f"\x1b[{code}m" for code in codes) + f"{text}\x1b[0m"


class ReservoirLogFilter(logging.Filter):
    """
    A logging filter that tags records with the source location they were
    emitted from, as ``ref``.

    The location is relative to the current working directory when the
    source file lives beneath it, and abbreviated to the file's basename
    otherwise.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Set ``record.ref`` to ``path:line``.

        :param record: The record to annotate.
        :return: Always True; records are annotated, never dropped.
        """
        source = record.pathname
        if source.startswith(os.getcwd()):
            location = os.path.relpath(source)
        else:
            location = f".../{os.path.basename(source)}"
        record.ref = f"{location}:{record.lineno}"
        return True


__log_format__: str = " ".join(
    (
        styled("pid:", DIM, ITALIC) + "%(process)-8d",
        styled("thread:", DIM, ITALIC) + "%(threadName)-20s",
        "%(levelname)8s %(name)-20s %(message)-60s",
        styled("%(ref)s", DIM, ITALIC),
    )
)
"""
The console log format for reservoir, including process, thread and source
reference of each record.
"""

handler: logging.Handler = logging.StreamHandler()
"""
The console handler attached by :func:`configure_logging`.
"""
handler.setFormatter(logging.Formatter(__log_format__))
handler.addFilter(ReservoirLogFilter())


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Attach the reservoir console handler to the ``reservoir`` logger.

    Calling this more than once only updates the level.

    :param level: The level to log at.
    :return: The configured ``reservoir`` logger.
    """
    logger = logging.getLogger("reservoir")
    if handler not in logger.handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger
