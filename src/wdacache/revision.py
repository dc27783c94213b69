"""Revision oracles — how fresh is the locally bundled WebDriverAgent?"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

CARTHAGE_ROOT = "Carthage"


class RevisionOracle:
    """Interface for computing the local agent's revision token."""

    async def get_local_revision(self, path: Union[str, Path]) -> Optional[str]:
        """Compute the revision token of the agent sources under ``path``.

        Args:
            path: The agent bootstrap directory.

        Returns:
            An opaque token, or None if it cannot be determined.
        """
        raise NotImplementedError


class CarthageRevisionOracle(RevisionOracle):
    """Use the modification time of the bundled ``Carthage`` directory.

    The directory is rewritten whenever the bundled agent is upgraded, and
    an upgraded agent reports the same timestamp (in milliseconds) as
    ``build.upgradedAt`` in its status.

    Args:
        marker: Name of the marker entry inside the bootstrap directory.
    """

    def __init__(self, marker: str = CARTHAGE_ROOT) -> None:
        self._marker = marker

    def _read(self, path: Union[str, Path]) -> Optional[str]:
        marker_path = Path(path).expanduser() / self._marker
        try:
            mtime_ns = marker_path.stat().st_mtime_ns
        except FileNotFoundError:
            logger.debug("No revision marker at %s", marker_path)
            return None
        except OSError as exc:
            logger.warning("Cannot read revision marker %s: %s", marker_path, exc)
            return None
        return str(mtime_ns // 1_000_000)

    async def get_local_revision(self, path: Union[str, Path]) -> Optional[str]:
        return await asyncio.to_thread(self._read, path)
