"""Event domain — passkey lifecycle events and their factories.

The factories encode the recording conventions for each kind: attempts
carry no duration, failures and declines record ``outcome=False``, and
``None`` attribute values are simply omitted.
"""

from __future__ import annotations

from passkeymetrics.events.schemas import ATTRIBUTE_SCHEMA_VERSION
from passkeymetrics.events.schemas import AttributeKey
from passkeymetrics.events.schemas import AttributeValue
from passkeymetrics.events.schemas import capture_timestamp
from passkeymetrics.events.schemas import default_node_id
from passkeymetrics.events.schemas import EventCategory
from passkeymetrics.events.schemas import EventKind
from passkeymetrics.events.schemas import PasskeyEvent

__all__ = [
    "ATTRIBUTE_SCHEMA_VERSION",
    "AttributeKey",
    "AttributeValue",
    "EventCategory",
    "EventKind",
    "PasskeyEvent",
    "authentication_attempt",
    "authentication_failure",
    "authentication_success",
    "capture_timestamp",
    "default_node_id",
    "fallback",
    "nudge_accepted",
    "nudge_declined",
    "nudge_shown",
    "registration_attempt",
    "registration_failure",
    "registration_success",
]


def _build(
    kind: EventKind,
    subject_id: str,
    *,
    outcome: bool,
    duration_ms: int = 0,
    attributes: dict[AttributeKey, AttributeValue | None] | None = None,
    node_id: str | None = None,
) -> PasskeyEvent:
    fields: dict = {
        "kind": kind,
        "subject_id": subject_id,
        "outcome": outcome,
        "duration_ms": duration_ms,
        "attributes": {
            key.value: value
            for key, value in (attributes or {}).items()
            if value is not None
        },
    }
    if node_id is not None:
        fields["node_id"] = node_id
    return PasskeyEvent(**fields)


# -- registration --


def registration_attempt(
    subject_id: str,
    *,
    device_info: str | None = None,
    start_time: int | None = None,
    node_id: str | None = None,
) -> PasskeyEvent:
    return _build(
        EventKind.REGISTRATION_ATTEMPT,
        subject_id,
        outcome=True,
        attributes={
            AttributeKey.DEVICE_INFO: device_info,
            AttributeKey.START_TIME: start_time,
        },
        node_id=node_id,
    )


def registration_success(
    subject_id: str,
    duration_ms: int,
    *,
    device_info: str | None = None,
    node_id: str | None = None,
) -> PasskeyEvent:
    return _build(
        EventKind.REGISTRATION_SUCCESS,
        subject_id,
        outcome=True,
        duration_ms=duration_ms,
        attributes={AttributeKey.DEVICE_INFO: device_info},
        node_id=node_id,
    )


def registration_failure(
    subject_id: str,
    duration_ms: int,
    *,
    error_reason: str | None = None,
    device_info: str | None = None,
    node_id: str | None = None,
) -> PasskeyEvent:
    return _build(
        EventKind.REGISTRATION_FAILURE,
        subject_id,
        outcome=False,
        duration_ms=duration_ms,
        attributes={
            AttributeKey.DEVICE_INFO: device_info,
            AttributeKey.ERROR_REASON: error_reason,
        },
        node_id=node_id,
    )


# -- authentication --


def authentication_attempt(
    subject_id: str,
    *,
    device_info: str | None = None,
    start_time: int | None = None,
    node_id: str | None = None,
) -> PasskeyEvent:
    return _build(
        EventKind.AUTHENTICATION_ATTEMPT,
        subject_id,
        outcome=True,
        attributes={
            AttributeKey.DEVICE_INFO: device_info,
            AttributeKey.START_TIME: start_time,
        },
        node_id=node_id,
    )


def authentication_success(
    subject_id: str,
    duration_ms: int,
    *,
    device_info: str | None = None,
    node_id: str | None = None,
) -> PasskeyEvent:
    return _build(
        EventKind.AUTHENTICATION_SUCCESS,
        subject_id,
        outcome=True,
        duration_ms=duration_ms,
        attributes={AttributeKey.DEVICE_INFO: device_info},
        node_id=node_id,
    )


def authentication_failure(
    subject_id: str,
    duration_ms: int,
    *,
    error_reason: str | None = None,
    device_info: str | None = None,
    node_id: str | None = None,
) -> PasskeyEvent:
    return _build(
        EventKind.AUTHENTICATION_FAILURE,
        subject_id,
        outcome=False,
        duration_ms=duration_ms,
        attributes={
            AttributeKey.DEVICE_INFO: device_info,
            AttributeKey.ERROR_REASON: error_reason,
        },
        node_id=node_id,
    )


# -- nudges --


def nudge_shown(
    subject_id: str, *, context: str | None = None, node_id: str | None = None
) -> PasskeyEvent:
    return _build(
        EventKind.NUDGE_SHOWN,
        subject_id,
        outcome=True,
        attributes={AttributeKey.NUDGE_CONTEXT: context},
        node_id=node_id,
    )


def nudge_accepted(
    subject_id: str, *, context: str | None = None, node_id: str | None = None
) -> PasskeyEvent:
    return _build(
        EventKind.NUDGE_ACCEPTED,
        subject_id,
        outcome=True,
        attributes={AttributeKey.NUDGE_CONTEXT: context},
        node_id=node_id,
    )


def nudge_declined(
    subject_id: str, *, context: str | None = None, node_id: str | None = None
) -> PasskeyEvent:
    return _build(
        EventKind.NUDGE_DECLINED,
        subject_id,
        outcome=False,
        attributes={AttributeKey.NUDGE_CONTEXT: context},
        node_id=node_id,
    )


# -- fallback --


def fallback(
    subject_id: str,
    *,
    fallback_method: str | None = None,
    reason: str | None = None,
    node_id: str | None = None,
) -> PasskeyEvent:
    """Record a switch to a non-passkey method; the reason is categorized."""
    return _build(
        EventKind.FALLBACK,
        subject_id,
        outcome=False,
        attributes={
            AttributeKey.FALLBACK_METHOD: fallback_method,
            AttributeKey.ERROR_REASON: reason,
        },
        node_id=node_id,
    )
