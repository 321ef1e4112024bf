"""Producer-facing facade used by the registration and authentication flows.

Each ``record_*`` method builds the matching event and hands it to the
pipeline.  Bad input (an empty user id, a negative duration) is counted
as rejected instead of raising into the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from pydantic import ValidationError

from passkeymetrics import events
from passkeymetrics.events import PasskeyEvent
from passkeymetrics.pipeline import MetricsPipeline
from passkeymetrics.pipeline import SubmitOutcome

logger = logging.getLogger(__name__)


class PasskeyMetricsRecorder:
    """Fire-and-forget recording of passkey lifecycle events."""

    def __init__(self, pipeline: MetricsPipeline, *, node_id: str | None = None) -> None:
        self._pipeline = pipeline
        self._node_id = node_id

    @property
    def pipeline(self) -> MetricsPipeline:
        return self._pipeline

    def _record(self, build: Callable[..., PasskeyEvent], *args, **kwargs) -> SubmitOutcome:
        try:
            event = build(*args, node_id=self._node_id, **kwargs)
        except ValidationError as exc:
            self._pipeline.counters.increment("rejected")
            logger.debug("rejected metrics event builder=%s error=%s", build.__name__, exc)
            return SubmitOutcome.DROPPED
        return self._pipeline.submit(event)

    # -- registration --

    def record_registration_attempt(
        self, user_id: str, device_info: str | None = None, start_time: int | None = None
    ) -> SubmitOutcome:
        return self._record(
            events.registration_attempt,
            user_id,
            device_info=device_info,
            start_time=start_time,
        )

    def record_registration_success(
        self, user_id: str, device_info: str | None, duration: int
    ) -> SubmitOutcome:
        return self._record(
            events.registration_success, user_id, duration, device_info=device_info
        )

    def record_registration_failure(
        self,
        user_id: str,
        device_info: str | None,
        error_reason: str | None,
        duration: int,
    ) -> SubmitOutcome:
        return self._record(
            events.registration_failure,
            user_id,
            duration,
            error_reason=error_reason,
            device_info=device_info,
        )

    # -- authentication --

    def record_authentication_attempt(
        self, user_id: str, device_info: str | None = None, start_time: int | None = None
    ) -> SubmitOutcome:
        return self._record(
            events.authentication_attempt,
            user_id,
            device_info=device_info,
            start_time=start_time,
        )

    def record_authentication_success(
        self, user_id: str, device_info: str | None, duration: int
    ) -> SubmitOutcome:
        return self._record(
            events.authentication_success, user_id, duration, device_info=device_info
        )

    def record_authentication_failure(
        self,
        user_id: str,
        device_info: str | None,
        error_reason: str | None,
        duration: int,
    ) -> SubmitOutcome:
        return self._record(
            events.authentication_failure,
            user_id,
            duration,
            error_reason=error_reason,
            device_info=device_info,
        )

    # -- nudges --

    def record_nudge_shown(self, user_id: str, context: str | None = None) -> SubmitOutcome:
        return self._record(events.nudge_shown, user_id, context=context)

    def record_nudge_accepted(
        self, user_id: str, context: str | None = None
    ) -> SubmitOutcome:
        return self._record(events.nudge_accepted, user_id, context=context)

    def record_nudge_declined(
        self, user_id: str, context: str | None = None
    ) -> SubmitOutcome:
        return self._record(events.nudge_declined, user_id, context=context)

    # -- fallback --

    def record_fallback(
        self, user_id: str, fallback_method: str | None, reason: str | None
    ) -> SubmitOutcome:
        return self._record(
            events.fallback, user_id, fallback_method=fallback_method, reason=reason
        )
