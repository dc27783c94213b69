"""Remove every installed WebDriverAgent bundle from a device."""

from __future__ import annotations

import logging

from .models import UninstallReport
from .registry import WDA_CF_BUNDLE_NAME, BundleRegistry

logger = logging.getLogger(__name__)


class UninstallCoordinator:
    """Reconciles a device down to zero installed agent bundles.

    Removals run one at a time in registry order. A failed removal is
    recorded and the remaining bundles are still attempted, so one stuck
    install cannot block cleanup of the others.

    Args:
        registry: The device's bundle registry.
    """

    def __init__(self, registry: BundleRegistry) -> None:
        self._registry = registry

    async def reconcile(self, bundle_family: str = WDA_CF_BUNDLE_NAME) -> UninstallReport:
        """Uninstall all bundles named ``bundle_family``.

        Args:
            bundle_family: ``CFBundleName`` shared by all agent builds.

        Returns:
            UninstallReport listing what was found, removed and failed.

        Raises:
            BundleRegistryError: If the installed bundles cannot be listed.
        """
        bundle_ids = await self._registry.list_installed_bundle_ids(bundle_family)
        report = UninstallReport(requested=list(bundle_ids))
        if not bundle_ids:
            logger.debug("No WDAs on the device.")
            return report

        logger.debug("Uninstalling WDAs: %s", ", ".join(bundle_ids))
        for bundle_id in bundle_ids:
            try:
                removed = await self._registry.remove_app(bundle_id)
            except Exception as exc:
                logger.warning("Failed to uninstall %s: %s", bundle_id, exc)
                report.failed.append((bundle_id, str(exc)))
                continue
            if removed:
                report.removed.append(bundle_id)
            else:
                logger.warning("Failed to uninstall %s", bundle_id)
                report.failed.append((bundle_id, "removal reported failure"))

        if report.failed:
            logger.warning(
                "WebDriverAgent uninstall incomplete (%d of %d failed): %s",
                len(report.failed), len(bundle_ids),
                ", ".join(bundle_id for bundle_id, _ in report.failed),
            )
        else:
            logger.info("Uninstalled %d WDA bundle(s)", report.removed_count)
        return report
