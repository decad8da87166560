import logging

# Below DEBUG; used for per-repair parser diagnostics.
TRACE = 5
logging.addLevelName(TRACE, "TRACE")


def setup_logging(log_level: str = "INFO"):
    """
    Set up logging for the command line entry point.
    Args:
        log_level (str): Logging level as a string (e.g., 'TRACE', 'DEBUG', 'INFO').
    """
    numeric_level = logging.getLevelName(log_level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {log_level}")
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
