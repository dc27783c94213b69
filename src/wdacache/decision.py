"""
Cache decision engine — may an already-running WebDriverAgent be reused?

The agent binary on the device is never inspected. Its identity is inferred
from the ``build`` section of its status and compared against the locally
bundled sources. Rules, first match wins:

  1. Nothing running                      → rebuild (nothing to remove)
  2. ``upgradedAt`` reported:
       local revision unknown             → reuse (fail open)
       local revision differs             → uninstall and rebuild
       local revision equal               → reuse
  3. ``productBundleIdentifier`` reported:
       equals the expected bundle id      → reuse
       otherwise                          → uninstall and rebuild
  4. Anything else                        → reuse

A revision comparison, when it can be made, outranks the bundle id check.
"""

from __future__ import annotations

from typing import Optional

from .models import CacheDecision, DecisionReason, StatusReport

WDA_RUNNER_BUNDLE_ID = "com.facebook.WebDriverAgentRunner"


def _same_revision(remote: str, local: str) -> bool:
    return str(remote).strip().lower() == str(local).strip().lower()


def decide(
    status: Optional[StatusReport],
    local_revision: Optional[str],
    identity_expectation: Optional[str] = None,
) -> CacheDecision:
    """Decide whether the running agent can serve a new session.

    Args:
        status: The agent's status, or None if nothing answered.
        local_revision: Revision token of the bundled agent, or None if it
            could not be determined.
        identity_expectation: Bundle id the agent should carry. Defaults to
            ``com.facebook.WebDriverAgentRunner``.

    Returns:
        CacheDecision describing the outcome and the rule that produced it.
    """
    expected_bundle_id = identity_expectation or WDA_RUNNER_BUNDLE_ID

    if status is None:
        return CacheDecision(
            reuse=False,
            reason=DecisionReason.NOT_RUNNING,
            detail="WDA is not running; there is nothing to cache",
        )

    build = status.build

    if build.upgraded_at is not None:
        if local_revision is None:
            return CacheDecision(
                reuse=True,
                reason=DecisionReason.REVISION_UNKNOWN,
                detail=(
                    "Cannot determine the revision of the bundled WDA; "
                    f"trusting the running one (upgradedAt={build.upgraded_at})"
                ),
            )
        if not _same_revision(build.upgraded_at, local_revision):
            return CacheDecision(
                reuse=False,
                reason=DecisionReason.REVISION_MISMATCH,
                detail=(
                    "Running WDA differs from the bundled one "
                    f"({local_revision} != {build.upgraded_at})"
                ),
            )
        return CacheDecision(
            reuse=True,
            reason=DecisionReason.REVISION_MATCH,
            detail=f"Running WDA matches the bundled revision {local_revision}",
        )

    if build.product_bundle_identifier is not None:
        if build.product_bundle_identifier == expected_bundle_id:
            return CacheDecision(
                reuse=True,
                reason=DecisionReason.BUNDLE_ID_MATCH,
                detail=f"Running WDA has the expected bundle id '{expected_bundle_id}'",
            )
        return CacheDecision(
            reuse=False,
            reason=DecisionReason.BUNDLE_ID_MISMATCH,
            detail=(
                f"Running WDA has bundle id '{build.product_bundle_identifier}', "
                f"expected '{expected_bundle_id}'"
            ),
        )

    return CacheDecision(
        reuse=True,
        reason=DecisionReason.NO_IDENTITY,
        detail="Running WDA reports no identity; reusing it",
    )


class CacheDecisionEngine:
    """Holds the identity expectation for one session and applies ``decide``.

    Args:
        identity_expectation: Bundle id the agent should carry after any
            upgrade. None means the canonical WDA runner id.
    """

    def __init__(self, identity_expectation: Optional[str] = None) -> None:
        self.identity_expectation = identity_expectation or WDA_RUNNER_BUNDLE_ID

    @staticmethod
    def needs_local_revision(status: Optional[StatusReport]) -> bool:
        """Only an ``upgradedAt`` in the status makes the local revision matter."""
        return status is not None and status.build.upgraded_at is not None

    def decide(
        self,
        status: Optional[StatusReport],
        local_revision: Optional[str],
    ) -> CacheDecision:
        return decide(status, local_revision, self.identity_expectation)
