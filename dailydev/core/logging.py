import logging

# Request-level chatter from the provider SDKs.
NOISY_LOGGERS = ("httpx", "httpcore", "stripe")


def configure_logging(level: str = "INFO") -> None:
    """Configure application logging; provider clients only log warnings unless DEBUG."""
    level = level.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    if level != "DEBUG":
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
