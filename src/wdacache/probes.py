"""
Status probes — ask a running WebDriverAgent what build it is.

A probe has three outcomes and they must never be confused:

* a ``StatusReport`` when an agent answered with a usable payload,
* ``None`` when nothing is listening at the endpoint,
* ``StatusTransportError`` when the request failed in any other way
  (timeout, HTTP error, unparseable body).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import requests
from pydantic import ValidationError

from .errors import StatusTransportError
from .models import AgentEndpoint, StatusReport

logger = logging.getLogger(__name__)

_STATUS_PATH = "status"


class StatusProbe:
    """Interface for querying a running agent's build metadata."""

    async def get_status(self) -> Optional[StatusReport]:
        """Query the agent.

        Returns:
            StatusReport, or None if no agent is reachable.

        Raises:
            StatusTransportError: If the query failed outright.
        """
        raise NotImplementedError


def parse_status_payload(payload: Any) -> StatusReport:
    """Turn a decoded ``/status`` body into a StatusReport.

    WDA wraps its answer in the W3C ``{"value": {...}}`` envelope; a bare
    object is accepted as well.

    Args:
        payload: Decoded JSON body.

    Returns:
        StatusReport with an (possibly empty) build section.

    Raises:
        StatusTransportError: If the payload is not a JSON object or its
            build section is malformed.
    """
    if isinstance(payload, dict) and isinstance(payload.get("value"), dict):
        payload = payload["value"]
    if not isinstance(payload, dict):
        raise StatusTransportError(
            f"Unexpected status payload type: {type(payload).__name__}"
        )
    try:
        return StatusReport.model_validate({"build": payload.get("build")})
    except ValidationError as exc:
        raise StatusTransportError(f"Malformed build metadata: {exc}") from exc


class HttpStatusProbe(StatusProbe):
    """Probe ``GET <endpoint>/status`` over HTTP.

    Args:
        endpoint: Where the agent listens.
        timeout: Seconds before the request is abandoned.
    """

    def __init__(self, endpoint: AgentEndpoint, timeout: float = 5.0) -> None:
        self._endpoint = endpoint
        self._timeout = timeout

    @property
    def status_url(self) -> str:
        return f"{self._endpoint.href.rstrip('/')}/{_STATUS_PATH}"

    def _fetch(self) -> Optional[StatusReport]:
        url = self.status_url
        try:
            resp = requests.get(url, timeout=self._timeout)
        except requests.Timeout as exc:
            raise StatusTransportError(f"Timed out querying {url}: {exc}") from exc
        except requests.ConnectionError:
            logger.debug("WDA is not listening at '%s'", self._endpoint.href)
            return None
        except requests.RequestException as exc:
            raise StatusTransportError(f"Status request to {url} failed: {exc}") from exc

        if resp.status_code >= 400:
            raise StatusTransportError(
                f"Status request to {url} failed: {resp.status_code} {resp.text}"
            )
        try:
            payload = resp.json()
        except ValueError as exc:
            raise StatusTransportError(f"Status response from {url} is not JSON") from exc

        report = parse_status_payload(payload)
        logger.debug("WDA status at %s: %s", url, report.build.model_dump(exclude_none=True))
        return report

    async def get_status(self) -> Optional[StatusReport]:
        return await asyncio.to_thread(self._fetch)
