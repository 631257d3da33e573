"""
Debug tracing, enabled by setting the TDD_DEBUG environment variable.
"""

import os
import sys


def dbg(*parts):
    """Prints a `[DBG]` line to stderr when TDD_DEBUG is set."""
    if os.environ.get("TDD_DEBUG"):
        try:
            print("[DBG]", *parts, file=sys.stderr)
        except Exception:
            pass
