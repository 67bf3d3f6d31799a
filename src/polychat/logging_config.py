import logging


def configure_logging(
    level: int = logging.INFO, log_file: str | None = "polychat.log"
) -> None:
    """Send polychat logs to stderr and, optionally, a log file.

    Library modules only create loggers; applications call this once.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.insert(0, logging.FileHandler(log_file))
    logging.basicConfig(
        level=level,
        format='%(asctime)s:%(name)s:%(levelname)s:%(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers,
    )
