"""Exceptions raised by wdacache.

Missing data (an absent status field, an unreadable revision marker) is
never an exception; it is represented by ``None``. These classes cover calls
that failed outright.
"""

from __future__ import annotations


class WdaCacheError(Exception):
    """Base class for all wdacache errors."""


class StatusTransportError(WdaCacheError):
    """The agent status endpoint could not be queried or returned garbage."""


class BundleRegistryError(WdaCacheError):
    """The device bundle registry could not be listed or modified."""


class AgentLaunchError(WdaCacheError):
    """The agent could not be launched."""
