"""
Logging helpers.

Library modules only create ``logging.getLogger(__name__)`` loggers; entry
points call ``configure_logging`` once. Access keys identify a taxpayer's
invoice, so log lines always carry the masked form.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def mask_access_key(access_key: str) -> str:
    """
    Mask an access key for logs and error details.

    Example:
        >>> mask_access_key('35241145070190000232550010006198721341979067')
        '3524***9067'
    """
    if not access_key or len(access_key) < 8:
        return '***'
    return f"{access_key[:4]}***{access_key[-4:]}"


def configure_logging(level: str = "INFO") -> None:
    """
    Configure root logging for command-line use.

    Logs go to stderr so stdout stays reserved for the JSON envelope.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
