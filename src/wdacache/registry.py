"""
Bundle registries — which WebDriverAgent builds are installed on a device.

Each registry lists the user-installed bundle identifiers whose bundle name
(``CFBundleName``) matches the agent's runner family, and removes a bundle
by identifier. Several matches usually mean earlier sessions leaked
installs under different bundle ids.

Implementations:
    SimulatorBundleRegistry   — ``xcrun simctl`` on a booted simulator
    RealDeviceBundleRegistry  — ``ideviceinstaller`` (libimobiledevice)
"""

from __future__ import annotations

import asyncio
import json
import logging
import plistlib
import subprocess
from typing import Any, Iterable, Optional

from .errors import BundleRegistryError

logger = logging.getLogger(__name__)

WDA_CF_BUNDLE_NAME = "WebDriverAgentRunner-Runner"
_USER_APPLICATION_TYPE = "User"
_COMMAND_TIMEOUT_SECONDS = 60


def _run(
    cmd: list[str],
    input: Optional[bytes] = None,
    timeout: float = _COMMAND_TIMEOUT_SECONDS,
) -> subprocess.CompletedProcess:
    """Run a device tool and capture its output.

    Args:
        cmd: Command and arguments.
        input: Bytes written to the process's stdin.
        timeout: Seconds before the process is killed.

    Returns:
        CompletedProcess with bytes stdout/stderr.

    Raises:
        BundleRegistryError: If the tool is missing or timed out.
    """
    try:
        return subprocess.run(
            cmd, input=input, capture_output=True, timeout=timeout, check=False,
        )
    except FileNotFoundError as exc:
        raise BundleRegistryError(f"'{cmd[0]}' is not installed: {exc}") from exc
    except subprocess.TimeoutExpired as exc:
        raise BundleRegistryError(
            f"'{' '.join(cmd)}' timed out after {timeout}s"
        ) from exc


def _stderr(result: subprocess.CompletedProcess) -> str:
    raw = result.stderr or b""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    return raw.strip()


def filter_bundle_ids(apps: Iterable[dict[str, Any]], bundle_name: str) -> list[str]:
    """Pick user apps named ``bundle_name`` out of a device app listing.

    Args:
        apps: App info dicts carrying ``CFBundleIdentifier``, ``CFBundleName``
            and optionally ``ApplicationType``.
        bundle_name: The ``CFBundleName`` to match.

    Returns:
        Matching bundle identifiers, in listing order.
    """
    bundle_ids = []
    for app in apps:
        if app.get("CFBundleName") != bundle_name:
            continue
        app_type = app.get("ApplicationType")
        if app_type is not None and app_type != _USER_APPLICATION_TYPE:
            continue
        bundle_id = app.get("CFBundleIdentifier")
        if bundle_id:
            bundle_ids.append(bundle_id)
    return bundle_ids


class BundleRegistry:
    """Interface for a device's installed-application registry."""

    async def list_installed_bundle_ids(self, bundle_name: str) -> list[str]:
        """List user-installed bundle ids whose bundle name is ``bundle_name``.

        Raises:
            BundleRegistryError: If the device could not be queried.
        """
        raise NotImplementedError

    async def remove_app(self, bundle_id: str) -> bool:
        """Uninstall ``bundle_id``. Returns True on success."""
        raise NotImplementedError


class SimulatorBundleRegistry(BundleRegistry):
    """Installed apps on an iOS simulator, via ``xcrun simctl``.

    Args:
        udid: Simulator UDID.
    """

    def __init__(self, udid: str) -> None:
        self.udid = udid

    def _list(self, bundle_name: str) -> list[str]:
        listing = _run(["xcrun", "simctl", "listapps", self.udid])
        if listing.returncode != 0:
            raise BundleRegistryError(
                f"Cannot list apps on simulator {self.udid}: {_stderr(listing)}"
            )
        # listapps prints an old-style plist; plutil turns it into JSON.
        converted = _run(
            ["plutil", "-convert", "json", "-o", "-", "-"], input=listing.stdout,
        )
        if converted.returncode != 0:
            raise BundleRegistryError(
                f"Cannot parse app list of simulator {self.udid}: {_stderr(converted)}"
            )
        try:
            apps = json.loads(converted.stdout or b"{}")
        except ValueError as exc:
            raise BundleRegistryError(
                f"Cannot parse app list of simulator {self.udid}: {exc}"
            ) from exc
        if not isinstance(apps, dict):
            raise BundleRegistryError(
                f"Unexpected app list from simulator {self.udid}"
            )
        return filter_bundle_ids(
            (dict(info, CFBundleIdentifier=info.get("CFBundleIdentifier", key))
             for key, info in apps.items() if isinstance(info, dict)),
            bundle_name,
        )

    def _remove(self, bundle_id: str) -> bool:
        result = _run(["xcrun", "simctl", "uninstall", self.udid, bundle_id])
        if result.returncode != 0:
            logger.warning(
                "Failed to uninstall %s from simulator %s: %s",
                bundle_id, self.udid, _stderr(result),
            )
            return False
        return True

    async def list_installed_bundle_ids(self, bundle_name: str) -> list[str]:
        return await asyncio.to_thread(self._list, bundle_name)

    async def remove_app(self, bundle_id: str) -> bool:
        return await asyncio.to_thread(self._remove, bundle_id)


class RealDeviceBundleRegistry(BundleRegistry):
    """Installed apps on a physical device, via ``ideviceinstaller``.

    Args:
        udid: Device UDID.
    """

    def __init__(self, udid: str) -> None:
        self.udid = udid

    def _list(self, bundle_name: str) -> list[str]:
        result = _run(["ideviceinstaller", "-u", self.udid, "-l", "-o", "xml"])
        if result.returncode != 0:
            raise BundleRegistryError(
                f"Cannot list apps on device {self.udid}: {_stderr(result)}"
            )
        try:
            apps = plistlib.loads(result.stdout or b"")
        except Exception as exc:
            raise BundleRegistryError(
                f"Cannot parse app list of device {self.udid}: {exc}"
            ) from exc
        if not isinstance(apps, list):
            raise BundleRegistryError(f"Unexpected app list from device {self.udid}")
        return filter_bundle_ids(
            (app for app in apps if isinstance(app, dict)), bundle_name,
        )

    def _remove(self, bundle_id: str) -> bool:
        result = _run(["ideviceinstaller", "-u", self.udid, "-U", bundle_id])
        if result.returncode != 0:
            logger.warning(
                "Failed to uninstall %s from device %s: %s",
                bundle_id, self.udid, _stderr(result),
            )
            return False
        return True

    async def list_installed_bundle_ids(self, bundle_name: str) -> list[str]:
        return await asyncio.to_thread(self._list, bundle_name)

    async def remove_app(self, bundle_id: str) -> bool:
        return await asyncio.to_thread(self._remove, bundle_id)


def registry_for_device(udid: str, real_device: bool = False) -> BundleRegistry:
    """Pick the registry implementation for a device.

    Args:
        udid: Device or simulator UDID.
        real_device: True for a physical device.

    Returns:
        A BundleRegistry bound to ``udid``.
    """
    if real_device:
        return RealDeviceBundleRegistry(udid)
    return SimulatorBundleRegistry(udid)
