"""Tests for AgentHandle: construction, endpoint, caching, launch and quit."""

from __future__ import annotations

import os

import pytest

from wdacache import BOOTSTRAP_PATH
from wdacache.agent import AgentHandle, BuildPipeline
from wdacache.errors import AgentLaunchError, BundleRegistryError, StatusTransportError
from wdacache.models import AgentOptions, DecisionReason, StatusReport
from wdacache.probes import HttpStatusProbe
from wdacache.registry import RealDeviceBundleRegistry, SimulatorBundleRegistry
from wdacache.revision import CarthageRevisionOracle

FAKE_ARGS = {
    "device": "some sim",
    "platformVersion": "9",
    "host": "me",
    "port": "5000",
    "realDevice": False,
}

DEFAULT_AGENT_PATH = os.path.abspath(os.path.join(BOOTSTRAP_PATH, "WebDriverAgent.xcodeproj"))
CUSTOM_BOOTSTRAP_PATH = "/path/to/wda"
CUSTOM_AGENT_PATH = "/path/to/some/agent/WebDriverAgent.xcodeproj"
CUSTOM_DERIVED_DATA_PATH = "/path/to/some/agent/DerivedData/"


class RecordingPipeline(BuildPipeline):
    def __init__(self, status=None, error=None, quit_error=None) -> None:
        self.status = status
        self.error = error
        self.quit_error = quit_error
        self.launched: list[str] = []
        self.quit_calls = 0

    async def launch(self, handle, session_id):
        self.launched.append(session_id)
        if self.error is not None:
            raise self.error
        return self.status

    async def quit(self, handle):
        self.quit_calls += 1
        if self.quit_error is not None:
            raise self.quit_error


@pytest.fixture
def wda(probe, oracle, registry) -> AgentHandle:
    return AgentHandle(
        {"udid": "1"}, device=registry, status_probe=probe, revision_oracle=oracle,
    )


# ---------------------------------------------------------------------------
# Constructor
# ---------------------------------------------------------------------------


class TestConstructor:
    def test_default_agent_path(self):
        agent = AgentHandle(FAKE_ARGS)
        assert agent.bootstrap_path == BOOTSTRAP_PATH
        assert agent.agent_path == DEFAULT_AGENT_PATH

    def test_custom_bootstrap_only(self):
        agent = AgentHandle({**FAKE_ARGS, "bootstrapPath": CUSTOM_BOOTSTRAP_PATH})
        assert agent.bootstrap_path == CUSTOM_BOOTSTRAP_PATH
        assert agent.agent_path == os.path.abspath(
            os.path.join(CUSTOM_BOOTSTRAP_PATH, "WebDriverAgent.xcodeproj")
        )

    def test_custom_bootstrap_and_agent(self):
        agent = AgentHandle({
            **FAKE_ARGS,
            "bootstrapPath": CUSTOM_BOOTSTRAP_PATH,
            "agentPath": CUSTOM_AGENT_PATH,
        })
        assert agent.bootstrap_path == CUSTOM_BOOTSTRAP_PATH
        assert agent.agent_path == CUSTOM_AGENT_PATH

    def test_custom_derived_data_path(self):
        agent = AgentHandle({**FAKE_ARGS, "derivedDataPath": CUSTOM_DERIVED_DATA_PATH})
        assert agent.xcodebuild.derived_data_path == CUSTOM_DERIVED_DATA_PATH

    def test_capabilities_are_parsed(self):
        agent = AgentHandle(FAKE_ARGS)
        assert agent.udid == "some sim"
        assert agent.platform_version == "9"
        assert agent.port == 5000
        assert agent.real_device is False

    def test_keyword_overrides(self):
        agent = AgentHandle(FAKE_ARGS, wdaLocalPort=9100)
        assert agent.url.href == "http://localhost:9100/"

    def test_accepts_options_model(self):
        agent = AgentHandle(AgentOptions(wda_local_port=9200))
        assert agent.url.port == 9200

    def test_default_collaborators(self):
        agent = AgentHandle(FAKE_ARGS)
        assert isinstance(agent._status_probe, HttpStatusProbe)
        assert isinstance(agent._revision_oracle, CarthageRevisionOracle)
        assert isinstance(agent.device, SimulatorBundleRegistry)
        assert agent.device.udid == "some sim"

    def test_real_device_registry(self):
        agent = AgentHandle({**FAKE_ARGS, "realDevice": True})
        assert isinstance(agent.device, RealDeviceBundleRegistry)

    def test_no_device_without_udid(self):
        assert AgentHandle().device is None


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------


class TestUrl:
    def test_override_with_non_numeric_port(self):
        agent = AgentHandle({"webDriverAgentUrl": "http://mockurl:abc/"})
        assert agent.url.href == "http://mockurl:abc/"

    def test_default_listening_url(self):
        assert AgentHandle(FAKE_ARGS).url.href == "http://localhost:8100/"

    def test_empty_base_url(self):
        agent = AgentHandle({**FAKE_ARGS, "wdaBaseUrl": "", "wdaLocalPort": "9100"})
        assert agent.url.href == "http://localhost:9100/"

    def test_custom_base_url(self):
        agent = AgentHandle({**FAKE_ARGS, "wdaBaseUrl": "http://mockurl", "wdaLocalPort": "9100"})
        assert agent.url.href == "http://mockurl:9100/"

    def test_custom_base_url_with_slash(self):
        agent = AgentHandle({**FAKE_ARGS, "wdaBaseUrl": "http://mockurl/", "wdaLocalPort": "9100"})
        assert agent.url.href == "http://mockurl:9100/"

    def test_override_is_verbatim(self):
        agent = AgentHandle({
            **FAKE_ARGS,
            "webDriverAgentUrl": "http://mockurl:8100/",
            "wdaBaseUrl": "http://ignored",
            "wdaLocalPort": "9100",
        })
        assert agent.url.href == "http://mockurl:8100/"
        assert agent.web_driver_agent_url == "http://mockurl:8100/"


# ---------------------------------------------------------------------------
# launch / quit
# ---------------------------------------------------------------------------


class TestLaunch:
    @pytest.mark.asyncio
    async def test_override_returns_current_status(self, probe):
        pipeline = RecordingPipeline()
        probe.payload = {"build": {"time": "data"}}
        agent = AgentHandle(
            {**FAKE_ARGS, "webDriverAgentUrl": "http://mockurl:8100/"},
            status_probe=probe, build_pipeline=pipeline,
        )

        status = await agent.launch("sessionId")

        assert status == StatusReport.model_validate({"build": {"time": "data"}})
        assert agent.url.href == "http://mockurl:8100/"
        assert pipeline.launched == []
        assert probe.calls == 1

    @pytest.mark.asyncio
    async def test_delegates_to_pipeline(self, probe):
        report = StatusReport.model_validate({"build": {"upgradedAt": "1"}})
        pipeline = RecordingPipeline(status=report)
        agent = AgentHandle(FAKE_ARGS, status_probe=probe, build_pipeline=pipeline)

        assert await agent.launch("abc") is report
        assert pipeline.launched == ["abc"]
        assert agent.started is True
        assert agent.web_driver_agent_url == "http://localhost:8100/"

    @pytest.mark.asyncio
    async def test_without_pipeline(self, probe):
        agent = AgentHandle(FAKE_ARGS, status_probe=probe)
        with pytest.raises(AgentLaunchError):
            await agent.launch("abc")

    @pytest.mark.asyncio
    async def test_pipeline_failure_is_wrapped(self, probe):
        pipeline = RecordingPipeline(error=RuntimeError("xcodebuild exited 65"))
        agent = AgentHandle(FAKE_ARGS, status_probe=probe, build_pipeline=pipeline)
        with pytest.raises(AgentLaunchError, match="xcodebuild exited 65"):
            await agent.launch("abc")
        assert agent.started is False

    @pytest.mark.asyncio
    async def test_quit_stops_pipeline_and_clears_url(self, probe):
        pipeline = RecordingPipeline()
        agent = AgentHandle(FAKE_ARGS, status_probe=probe, build_pipeline=pipeline)
        await agent.launch("abc")

        await agent.quit()

        assert pipeline.quit_calls == 1
        assert agent.started is False
        assert agent.web_driver_agent_url is None

    @pytest.mark.asyncio
    async def test_failed_quit_still_resets_handle(self, probe):
        pipeline = RecordingPipeline(quit_error=RuntimeError("simctl hung"))
        agent = AgentHandle(FAKE_ARGS, status_probe=probe, build_pipeline=pipeline)
        await agent.launch("abc")

        with pytest.raises(RuntimeError, match="simctl hung"):
            await agent.quit()

        assert agent.started is False
        assert agent.web_driver_agent_url is None

    @pytest.mark.asyncio
    async def test_quit_keeps_override(self, probe):
        agent = AgentHandle(
            {"webDriverAgentUrl": "http://mockurl:8100/"}, status_probe=probe,
        )
        await agent.launch("abc")
        await agent.quit()
        assert agent.web_driver_agent_url == "http://mockurl:8100/"


# ---------------------------------------------------------------------------
# setup_caching
# ---------------------------------------------------------------------------


class TestSetupCaching:
    @pytest.mark.asyncio
    async def test_no_running_wda(self, wda, probe, registry):
        registry.bundle_ids = ["com.appium.WDA1"]
        decision = await wda.setup_caching()
        assert probe.calls == 1
        assert decision.reason == DecisionReason.NOT_RUNNING
        assert registry.list_calls == []
        assert wda.web_driver_agent_url is None

    @pytest.mark.asyncio
    async def test_running_wda_with_only_time(self, wda, probe, registry):
        probe.payload = {"build": {"time": "Jun 24 2018 17:08:21"}}
        await wda.setup_caching()
        assert registry.list_calls == []
        assert wda.web_driver_agent_url == "http://localhost:8100/"

    @pytest.mark.asyncio
    async def test_non_default_bundle_id(self, wda, probe, registry):
        registry.bundle_ids = ["com.example.WebDriverAgent"]
        probe.payload = {"build": {
            "time": "Jun 24 2018 17:08:21",
            "productBundleIdentifier": "com.example.WebDriverAgent",
        }}
        await wda.setup_caching()
        assert len(registry.list_calls) == 1
        assert registry.removed == ["com.example.WebDriverAgent"]
        assert wda.web_driver_agent_url is None

    @pytest.mark.asyncio
    async def test_bundle_id_differs_from_capability(self, probe, oracle, registry):
        wda = AgentHandle(
            {"udid": "1", "updatedWDABundleId": "com.example.WebDriverAgent"},
            device=registry, status_probe=probe, revision_oracle=oracle,
        )
        probe.payload = {"build": {"productBundleIdentifier": "com.example.different.WebDriverAgent"}}
        await wda.setup_caching()
        assert len(registry.list_calls) == 1
        assert wda.web_driver_agent_url is None

    @pytest.mark.asyncio
    async def test_bundle_id_equals_capability(self, probe, oracle, registry):
        wda = AgentHandle(
            {"udid": "1", "updatedWDABundleId": "com.example.WebDriverAgent"},
            device=registry, status_probe=probe, revision_oracle=oracle,
        )
        probe.payload = {"build": {
            "time": "Jun 24 2018 17:08:21",
            "productBundleIdentifier": "com.example.WebDriverAgent",
        }}
        await wda.setup_caching()
        assert registry.list_calls == []
        assert wda.web_driver_agent_url == "http://localhost:8100/"

    @pytest.mark.asyncio
    async def test_revision_differs(self, wda, probe, oracle, registry):
        probe.payload = {"build": {"upgradedAt": "1"}}
        oracle.revision = "2"
        decision = await wda.setup_caching()
        assert decision.reason == DecisionReason.REVISION_MISMATCH
        assert len(registry.list_calls) == 1
        assert oracle.paths == [wda.bootstrap_path]

    @pytest.mark.asyncio
    async def test_revision_matches(self, wda, probe, oracle, registry):
        probe.payload = {"build": {"upgradedAt": "1"}}
        oracle.revision = "1"
        await wda.setup_caching()
        assert registry.list_calls == []
        assert wda.web_driver_agent_url == "http://localhost:8100/"

    @pytest.mark.asyncio
    async def test_revision_missing_from_status(self, wda, probe, oracle, registry):
        probe.payload = {"build": {}}
        oracle.revision = "1"
        await wda.setup_caching()
        assert registry.list_calls == []
        assert oracle.paths == []

    @pytest.mark.asyncio
    async def test_revision_missing_from_file_system(self, wda, probe, oracle, registry):
        probe.payload = {"build": {"upgradedAt": "1"}}
        oracle.revision = None
        await wda.setup_caching()
        assert registry.list_calls == []
        assert wda.web_driver_agent_url == "http://localhost:8100/"

    @pytest.mark.asyncio
    async def test_transport_error_propagates_without_uninstall(self, wda, probe, registry):
        probe.error = StatusTransportError("timed out")
        with pytest.raises(StatusTransportError):
            await wda.setup_caching()
        assert registry.list_calls == []

    @pytest.mark.asyncio
    async def test_partial_uninstall_failure_is_not_fatal(self, wda, probe, oracle, registry):
        registry.bundle_ids = ["com.appium.WDA1", "com.appium.WDA2"]
        registry.raising = {"com.appium.WDA1"}
        probe.payload = {"build": {"upgradedAt": "1"}}
        oracle.revision = "2"

        decision = await wda.setup_caching()

        assert decision.reuse is False
        assert registry.removed == ["com.appium.WDA1", "com.appium.WDA2"]

    @pytest.mark.asyncio
    async def test_registry_listing_failure_propagates(self, wda, probe, registry):
        registry.list_error = BundleRegistryError("device offline")
        probe.payload = {"build": {"productBundleIdentifier": "com.other"}}
        with pytest.raises(BundleRegistryError):
            await wda.setup_caching()

    @pytest.mark.asyncio
    async def test_evaluate_has_no_side_effects(self, wda, probe, registry):
        probe.payload = {"build": {"productBundleIdentifier": "com.other"}}
        decision = await wda.evaluate()
        assert decision.requires_uninstall is True
        assert registry.list_calls == []
        assert wda.web_driver_agent_url is None


class TestUninstall:
    @pytest.mark.asyncio
    async def test_without_device(self):
        report = await AgentHandle().uninstall()
        assert report.requested == []
        assert report.ok is True

    @pytest.mark.asyncio
    async def test_uses_device_registry(self, wda, registry):
        registry.bundle_ids = ["com.appium.WDA1", "com.appium.WDA2"]
        report = await wda.uninstall()
        assert registry.removed == ["com.appium.WDA1", "com.appium.WDA2"]
        assert report.removed_count == 2


class TestIsRunning:
    @pytest.mark.asyncio
    async def test_reflects_probe(self, wda, probe):
        assert await wda.is_running() is False
        probe.payload = {"build": {}}
        assert await wda.is_running() is True
