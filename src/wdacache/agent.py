"""
AgentHandle — one session's view of the WebDriverAgent on a device.

Ties the status probe, revision oracle, bundle registry and decision engine
together. The handle is built once per test session and owns that
session's endpoint and options; nothing survives it except what is
installed on the device.

Lifecycle
---------
1. ``setup_caching()`` — reuse a running agent, or uninstall a stale one
2. ``launch()``        — use the override URL, or delegate to a BuildPipeline
3. ``quit()``          — stop what ``launch()`` started and forget the URL

Callers serialise lifecycle calls on one handle; handles for different
devices are independent.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Mapping, Optional, Union

from . import BOOTSTRAP_PATH
from .decision import CacheDecisionEngine
from .errors import AgentLaunchError
from .models import (
    AgentEndpoint,
    AgentOptions,
    CacheDecision,
    StatusReport,
    UninstallReport,
    XcodeBuildSettings,
)
from .probes import HttpStatusProbe, StatusProbe
from .registry import WDA_CF_BUNDLE_NAME, BundleRegistry, registry_for_device
from .revision import CarthageRevisionOracle, RevisionOracle
from .uninstall import UninstallCoordinator

logger = logging.getLogger(__name__)

AGENT_PROJECT_FILE = "WebDriverAgent.xcodeproj"


class BuildPipeline:
    """Builds, installs and starts the agent. Implemented outside wdacache.

    The handle calls ``launch`` only when no override URL is configured and
    ``quit`` only after a successful ``launch``.
    """

    async def launch(self, handle: "AgentHandle", session_id: str) -> Optional[StatusReport]:
        """Build and start the agent described by ``handle.xcodebuild``.

        Args:
            handle: The requesting handle (endpoint, options, build settings).
            session_id: The session the agent is launched for.

        Returns:
            The status of the freshly started agent.
        """
        raise NotImplementedError

    async def quit(self, handle: "AgentHandle") -> None:
        """Stop whatever ``launch`` started."""
        raise NotImplementedError


class AgentHandle:
    """Lifecycle façade for the WebDriverAgent serving one session.

    Args:
        options: AgentOptions, or a capability mapping in camelCase or
            snake_case. Keyword arguments are merged on top.
        device: Bundle registry of the target device. Defaults to a
            simulator or real-device registry for ``udid`` when one is set.
        status_probe: Defaults to an HTTP probe of the resolved endpoint.
        revision_oracle: Defaults to the Carthage mtime oracle.
        build_pipeline: External builder used by ``launch()``.
    """

    def __init__(
        self,
        options: Optional[Union[AgentOptions, Mapping[str, Any]]] = None,
        *,
        device: Optional[BundleRegistry] = None,
        status_probe: Optional[StatusProbe] = None,
        revision_oracle: Optional[RevisionOracle] = None,
        build_pipeline: Optional[BuildPipeline] = None,
        **overrides: Any,
    ) -> None:
        self.options = _coerce_options(options, overrides)
        opts = self.options

        self.udid = opts.udid
        self.platform_version = opts.platform_version
        self.host = opts.host
        self.port = opts.port
        self.real_device = opts.real_device
        self.wda_local_port = opts.wda_local_port

        self.bootstrap_path = opts.bootstrap_path or BOOTSTRAP_PATH
        self.agent_path = opts.agent_path or os.path.abspath(
            os.path.join(self.bootstrap_path, AGENT_PROJECT_FILE)
        )
        self.xcodebuild = XcodeBuildSettings(
            agent_path=self.agent_path,
            bootstrap_path=self.bootstrap_path,
            derived_data_path=opts.derived_data_path,
            real_device=opts.real_device,
            platform_version=opts.platform_version,
            udid=opts.udid,
        )

        if opts.web_driver_agent_url:
            self._url = AgentEndpoint.from_override(opts.web_driver_agent_url)
        else:
            self._url = AgentEndpoint.from_base_url(opts.wda_base_url, opts.wda_local_port)
        self.web_driver_agent_url: Optional[str] = opts.web_driver_agent_url
        self.started = False

        if device is None and opts.udid:
            device = registry_for_device(opts.udid, opts.real_device)
        self.device = device
        self._status_probe = status_probe or HttpStatusProbe(
            self._url, timeout=opts.status_timeout,
        )
        self._revision_oracle = revision_oracle or CarthageRevisionOracle()
        self._build_pipeline = build_pipeline
        self._engine = CacheDecisionEngine(opts.updated_wda_bundle_id)

    # ------------------------------------------------------------------
    # Endpoint
    # ------------------------------------------------------------------

    @property
    def url(self) -> AgentEndpoint:
        """The agent endpoint, fixed at construction."""
        return self._url

    @property
    def has_override(self) -> bool:
        return bool(self.options.web_driver_agent_url)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def get_status(self) -> Optional[StatusReport]:
        """Query the agent; None if nothing is listening."""
        return await self._status_probe.get_status()

    async def is_running(self) -> bool:
        return (await self.get_status()) is not None

    # ------------------------------------------------------------------
    # Caching
    # ------------------------------------------------------------------

    async def evaluate(self) -> CacheDecision:
        """Decide about the running agent without acting on the decision.

        Raises:
            StatusTransportError: If the agent could not be queried.
        """
        status = await self.get_status()
        local_revision = None
        if self._engine.needs_local_revision(status):
            local_revision = await self._revision_oracle.get_local_revision(
                self.bootstrap_path
            )
            logger.debug("Upgrade timestamp of the currently bundled WDA: %s", local_revision)
            logger.debug("Upgrade timestamp of the WDA on the device: %s", status.build.upgraded_at)
        return self._engine.decide(status, local_revision)

    async def setup_caching(self) -> CacheDecision:
        """Reuse the running agent if it is still valid, otherwise clear it out.

        On reuse, ``web_driver_agent_url`` points at the endpoint so later
        calls skip the build. Otherwise the URL falls back to the configured
        override (None without one) and, if a stale
        agent was found, every installed agent bundle is removed. A partly
        failed removal is logged, not raised.

        Returns:
            The CacheDecision that was applied.

        Raises:
            StatusTransportError: If the agent could not be queried.
            BundleRegistryError: If the installed bundles could not be listed.
        """
        decision = await self.evaluate()

        if decision.reuse:
            self.web_driver_agent_url = self._url.href
            logger.info(
                "Will reuse previously cached WDA instance at '%s' (%s). "
                "Set the wdaLocalPort capability to a value different from %s "
                "if this is an undesired behavior.",
                self._url.href, decision.detail, self._url.port,
            )
            return decision

        self.web_driver_agent_url = self.options.web_driver_agent_url
        if decision.requires_uninstall:
            logger.info("Will uninstall running WDA: %s", decision.detail)
            await self.uninstall()
        else:
            logger.debug(decision.detail)
        return decision

    async def uninstall(self) -> UninstallReport:
        """Remove every installed agent bundle from the device.

        Returns:
            UninstallReport; empty when no device registry is available.
        """
        if self.device is None:
            logger.warning("No device registry configured; cannot uninstall WDA")
            return UninstallReport()
        return await UninstallCoordinator(self.device).reconcile(WDA_CF_BUNDLE_NAME)

    # ------------------------------------------------------------------
    # Launch / quit
    # ------------------------------------------------------------------

    async def launch(self, session_id: str) -> Optional[StatusReport]:
        """Make an agent available for ``session_id``.

        With an override URL the agent is assumed to be managed elsewhere:
        its current status is returned and nothing is built or installed.

        Args:
            session_id: The session being started.

        Returns:
            Status of the agent serving the session.

        Raises:
            AgentLaunchError: If there is no override and no pipeline, or
                the pipeline failed.
        """
        if self.has_override:
            logger.info("Using provided WebDriverAgent at '%s'", self._url.href)
            self.web_driver_agent_url = self._url.href
            return await self.get_status()

        if self._build_pipeline is None:
            raise AgentLaunchError(
                "No build pipeline configured; set webDriverAgentUrl to use "
                "an agent that is already running"
            )

        logger.info("Launching WDA for session %s from %s", session_id, self.agent_path)
        try:
            status = await self._build_pipeline.launch(self, session_id)
        except AgentLaunchError:
            raise
        except Exception as exc:
            raise AgentLaunchError(f"Failed to launch WDA: {exc}") from exc

        self.started = True
        self.web_driver_agent_url = self._url.href
        return status

    async def quit(self) -> None:
        """Stop a launched agent and forget the cached URL.

        The handle is reset even when the pipeline fails to stop the agent;
        that failure is still raised.
        """
        try:
            if self.started and self._build_pipeline is not None:
                logger.info("Shutting down WDA sub-processes")
                await self._build_pipeline.quit(self)
        finally:
            self.started = False
            self.web_driver_agent_url = self.options.web_driver_agent_url


def _coerce_options(
    options: Optional[Union[AgentOptions, Mapping[str, Any]]],
    overrides: Mapping[str, Any],
) -> AgentOptions:
    if options is None:
        data: dict[str, Any] = {}
    elif isinstance(options, AgentOptions):
        data = options.model_dump(exclude_unset=True)
    else:
        data = AgentOptions.model_validate(dict(options)).model_dump(exclude_unset=True)
    if overrides:
        data.update(
            AgentOptions.model_validate(dict(overrides)).model_dump(exclude_unset=True)
        )
    return AgentOptions.model_validate(data)
