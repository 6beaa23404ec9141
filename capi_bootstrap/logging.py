"""Logging configuration for the capi_bootstrap package."""
import logging
import sys

from capi_bootstrap.config import Config

NOISY_LOGGERS = ("urllib3", "botocore", "boto3", "s3transfer", "kubernetes")


def setup_logging(debug_mode: bool = False) -> None:
    """Configure root logging based on debug mode.

    Args:
        debug_mode: Log at DEBUG and keep third-party loggers verbose
    """
    log_level = logging.DEBUG if debug_mode else getattr(logging, Config.LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=Config.LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stderr)
        ],
        force=True,
    )
    # Disable debug logging for noisy libraries
    if not debug_mode:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
