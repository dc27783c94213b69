"""Shared test fixtures for wdacache.

Collaborators are replaced by small fakes implementing the interfaces, so
no device, simulator or running agent is needed.
"""

from __future__ import annotations

from typing import Optional

import pytest

from wdacache.models import StatusReport
from wdacache.probes import StatusProbe
from wdacache.registry import BundleRegistry
from wdacache.revision import RevisionOracle


class FakeStatusProbe(StatusProbe):
    """Returns a canned status (or raises a canned error) and counts calls."""

    def __init__(self) -> None:
        self.payload: Optional[dict] = None
        self.error: Optional[Exception] = None
        self.calls = 0

    async def get_status(self) -> Optional[StatusReport]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        if self.payload is None:
            return None
        return StatusReport.model_validate(self.payload)


class FakeRevisionOracle(RevisionOracle):
    def __init__(self) -> None:
        self.revision: Optional[str] = None
        self.paths: list = []

    async def get_local_revision(self, path) -> Optional[str]:
        self.paths.append(path)
        return self.revision


class FakeBundleRegistry(BundleRegistry):
    """In-memory registry; ``failing`` ids fail removal, ``raising`` ids raise."""

    def __init__(self, bundle_ids: Optional[list[str]] = None) -> None:
        self.bundle_ids = list(bundle_ids or [])
        self.failing: set[str] = set()
        self.raising: set[str] = set()
        self.list_calls: list[str] = []
        self.removed: list[str] = []
        self.list_error: Optional[Exception] = None

    async def list_installed_bundle_ids(self, bundle_name: str) -> list[str]:
        self.list_calls.append(bundle_name)
        if self.list_error is not None:
            raise self.list_error
        return list(self.bundle_ids)

    async def remove_app(self, bundle_id: str) -> bool:
        self.removed.append(bundle_id)
        if bundle_id in self.raising:
            raise RuntimeError(f"device refused {bundle_id}")
        return bundle_id not in self.failing


@pytest.fixture
def probe() -> FakeStatusProbe:
    return FakeStatusProbe()


@pytest.fixture
def oracle() -> FakeRevisionOracle:
    return FakeRevisionOracle()


@pytest.fixture
def registry() -> FakeBundleRegistry:
    return FakeBundleRegistry()
