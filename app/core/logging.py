import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # google-genai/httpx are chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
