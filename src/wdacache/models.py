"""
Pydantic models for WebDriverAgent status, endpoints and configuration.

Status payloads come from the agent over HTTP and are only partially
populated. Every field here is optional unless the agent guarantees it:
an absent value is a signal in its own right, not a validation failure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from urllib.parse import urlsplit

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_SCHEME = "http"
DEFAULT_HOST = "localhost"
DEFAULT_BASE_URL = f"{DEFAULT_SCHEME}://{DEFAULT_HOST}"
DEFAULT_AGENT_PORT = 8100


# ---------------------------------------------------------------------------
# Agent status
# ---------------------------------------------------------------------------


class BuildMetadata(BaseModel):
    """The ``build`` section of a WebDriverAgent ``/status`` response."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    time: Optional[str] = None
    product_bundle_identifier: Optional[str] = None
    upgraded_at: Optional[str] = None

    @field_validator("upgraded_at", mode="before")
    @classmethod
    def _stringify_timestamp(cls, value: Any) -> Any:
        # WDA reports the upgrade timestamp as a number on some builds.
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            return str(int(value)) if value.is_integer() else str(value)
        if value == "":
            return None
        return value

    @field_validator("time", "product_bundle_identifier", mode="before")
    @classmethod
    def _blank_is_absent(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class StatusReport(BaseModel):
    """A reachable agent's status. ``None`` stands for "nothing running"."""

    build: BuildMetadata = Field(default_factory=BuildMetadata)

    @field_validator("build", mode="before")
    @classmethod
    def _missing_build_is_empty(cls, value: Any) -> Any:
        # A reachable agent always has a build section, even an empty one.
        return {} if value is None else value


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------


class AgentEndpoint(BaseModel):
    """Where the agent listens. Immutable once resolved."""

    model_config = ConfigDict(frozen=True)

    scheme: str = DEFAULT_SCHEME
    host: str = DEFAULT_HOST
    port: Optional[int] = DEFAULT_AGENT_PORT
    base_path: str = "/"
    override: Optional[str] = None

    @property
    def href(self) -> str:
        """Full URL of the agent, with a trailing path separator."""
        if self.override:
            return self.override
        host = f"[{self.host}]" if ":" in self.host else self.host
        netloc = host if self.port is None else f"{host}:{self.port}"
        return f"{self.scheme}://{netloc}{self.base_path}"

    @classmethod
    def from_override(cls, url: str) -> "AgentEndpoint":
        """Use a user-supplied agent URL verbatim.

        Args:
            url: Complete agent URL, e.g. ``http://10.0.0.5:8100/``.

        Returns:
            AgentEndpoint whose ``href`` is exactly ``url``.
        """
        parts = urlsplit(url)
        try:
            port = parts.port
        except ValueError:
            # Not numeric or out of range; href is the override regardless.
            port = None
        return cls(
            scheme=parts.scheme or DEFAULT_SCHEME,
            host=parts.hostname or DEFAULT_HOST,
            port=port,
            base_path=parts.path or "/",
            override=url,
        )

    @classmethod
    def from_base_url(
        cls,
        base_url: Optional[str] = None,
        port: Optional[int] = None,
    ) -> "AgentEndpoint":
        """Combine a base URL and a local port into an endpoint.

        Trailing separators on ``base_url`` are ignored, as is any port it
        carries: the port always comes from ``port`` (default 8100).

        Args:
            base_url: Scheme and host, e.g. ``http://mockurl``. Empty or
                None means ``http://localhost``.
            port: Local port the agent listens on.

        Returns:
            AgentEndpoint rooted at ``/``.
        """
        raw = (base_url or DEFAULT_BASE_URL).strip().rstrip("/")
        if "://" not in raw:
            raw = f"{DEFAULT_SCHEME}://{raw}"
        parts = urlsplit(raw)
        return cls(
            scheme=parts.scheme or DEFAULT_SCHEME,
            host=parts.hostname or DEFAULT_HOST,
            port=DEFAULT_AGENT_PORT if port is None else port,
            base_path="/",
        )


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class AgentOptions(BaseModel):
    """Session options consumed when an AgentHandle is built.

    Accepts the camelCase capability names used by Appium clients
    (``wdaLocalPort``, ``updatedWDABundleId``...) as well as snake_case.
    Unknown keys are ignored so a full capability set can be passed in.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    udid: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("udid", "device"),
    )
    platform_version: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    real_device: bool = False
    bootstrap_path: Optional[str] = None
    agent_path: Optional[str] = None
    derived_data_path: Optional[str] = None
    web_driver_agent_url: Optional[str] = None
    wda_base_url: Optional[str] = None
    wda_local_port: Optional[int] = Field(default=None, ge=1, le=65535)
    updated_wda_bundle_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "updatedWDABundleId", "updated_wda_bundle_id", "updatedWdaBundleId",
        ),
    )
    status_timeout: float = 5.0

    @field_validator(
        "port", "wda_local_port", "web_driver_agent_url", "wda_base_url",
        "bootstrap_path", "agent_path", "derived_data_path",
        "updated_wda_bundle_id", mode="before",
    )
    @classmethod
    def _blank_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("udid", "platform_version", "host", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class XcodeBuildSettings(BaseModel):
    """Parameters handed to the external build pipeline."""

    agent_path: str
    bootstrap_path: str
    derived_data_path: Optional[str] = None
    real_device: bool = False
    platform_version: Optional[str] = None
    udid: Optional[str] = None


# ---------------------------------------------------------------------------
# Decisions and reports
# ---------------------------------------------------------------------------


class DecisionReason(str, Enum):
    """Why the cache decision came out the way it did."""

    NOT_RUNNING = "not-running"
    REVISION_UNKNOWN = "revision-unknown"
    REVISION_MISMATCH = "revision-mismatch"
    REVISION_MATCH = "revision-match"
    BUNDLE_ID_MATCH = "bundle-id-match"
    BUNDLE_ID_MISMATCH = "bundle-id-mismatch"
    NO_IDENTITY = "no-identity"


@dataclass(frozen=True)
class CacheDecision:
    """Outcome of comparing a running agent against local expectations.

    Attributes:
        reuse: Whether the running agent may serve the session.
        reason: Which rule decided.
        detail: Human-readable explanation for logs and the CLI.
    """

    reuse: bool
    reason: DecisionReason
    detail: str = ""

    @property
    def requires_uninstall(self) -> bool:
        """A stale agent is installed and must go before a fresh install."""
        return not self.reuse and self.reason != DecisionReason.NOT_RUNNING

    def to_dict(self) -> dict:
        return {
            "reuse": self.reuse,
            "reason": self.reason.value,
            "detail": self.detail,
            "requires_uninstall": self.requires_uninstall,
        }


@dataclass
class UninstallReport:
    """Result of removing every installed agent bundle from a device.

    Attributes:
        requested: Bundle ids found on the device, in registry order.
        removed: Bundle ids that were removed.
        failed: ``(bundle_id, error)`` pairs for removals that failed, in
            attempt order.
    """

    requested: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)

    @property
    def removed_count(self) -> int:
        return len(self.removed)

    @property
    def ok(self) -> bool:
        """Whether every requested removal succeeded."""
        return not self.failed

    def to_dict(self) -> dict:
        return {
            "requested": list(self.requested),
            "removed": list(self.removed),
            "failed": [
                {"bundle_id": bundle_id, "error": error}
                for bundle_id, error in self.failed
            ],
            "ok": self.ok,
        }
