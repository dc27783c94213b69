"""
wdacache — WebDriverAgent lifecycle and cache management.

Decides whether a WebDriverAgent instance already running on a device can
be reused for a new session, and removes stale installations when it
cannot.
"""

import os

__version__ = "0.1.0"

WDACACHE_HOME = os.environ.get("WDACACHE_HOME", "~/.wdacache")

BOOTSTRAP_PATH = os.path.abspath(
    os.path.expanduser(
        os.environ.get(
            "WDACACHE_BOOTSTRAP_PATH",
            os.path.join(WDACACHE_HOME, "WebDriverAgent"),
        )
    )
)
