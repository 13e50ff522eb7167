
import logging
import os
import sys

_CONFIGURED = False


def setup_logging(level=None):
    """
    Configure logging idempotently.
    Safe to call multiple times.

    Level defaults to the HOMOLOGATION_LOG_LEVEL environment variable (INFO).
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    if level is None:
        level_name = os.getenv("HOMOLOGATION_LOG_LEVEL", "INFO").upper()
        level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    if root.handlers:
        # Someone (pytest, uvicorn) already installed handlers; leave them alone
        _CONFIGURED = True
        return

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
    )
    _CONFIGURED = True
