"""Passkey lifecycle event types and data models."""

from __future__ import annotations

import time
import uuid
from collections.abc import Mapping
from enum import Enum
from threading import Lock
from types import MappingProxyType

from pydantic import BaseModel
from pydantic import Field
from pydantic import field_serializer
from pydantic import field_validator

# Bumped whenever a key is added to or removed from ``AttributeKey``.
ATTRIBUTE_SCHEMA_VERSION = 1


class EventCategory(str, Enum):
    """Coarse grouping used by the policy gate."""

    REGISTRATION = "REGISTRATION"
    AUTHENTICATION = "AUTHENTICATION"
    NUDGE = "NUDGE"
    FALLBACK = "FALLBACK"


class EventKind(str, Enum):
    """Passkey lifecycle occurrences."""

    REGISTRATION_ATTEMPT = "PASSKEY_REGISTRATION_ATTEMPT"
    REGISTRATION_SUCCESS = "PASSKEY_REGISTRATION_SUCCESS"
    REGISTRATION_FAILURE = "PASSKEY_REGISTRATION_FAILURE"
    AUTHENTICATION_ATTEMPT = "PASSKEY_AUTHENTICATION_ATTEMPT"
    AUTHENTICATION_SUCCESS = "PASSKEY_AUTHENTICATION_SUCCESS"
    AUTHENTICATION_FAILURE = "PASSKEY_AUTHENTICATION_FAILURE"
    NUDGE_SHOWN = "PASSKEY_NUDGE_SHOWN"
    NUDGE_ACCEPTED = "PASSKEY_NUDGE_ACCEPTED"
    NUDGE_DECLINED = "PASSKEY_NUDGE_DECLINED"
    FALLBACK = "PASSKEY_FALLBACK"

    @property
    def category(self) -> EventCategory:
        return _KIND_CATEGORY[self]


_KIND_CATEGORY: dict[EventKind, EventCategory] = {
    EventKind.REGISTRATION_ATTEMPT: EventCategory.REGISTRATION,
    EventKind.REGISTRATION_SUCCESS: EventCategory.REGISTRATION,
    EventKind.REGISTRATION_FAILURE: EventCategory.REGISTRATION,
    EventKind.AUTHENTICATION_ATTEMPT: EventCategory.AUTHENTICATION,
    EventKind.AUTHENTICATION_SUCCESS: EventCategory.AUTHENTICATION,
    EventKind.AUTHENTICATION_FAILURE: EventCategory.AUTHENTICATION,
    EventKind.NUDGE_SHOWN: EventCategory.NUDGE,
    EventKind.NUDGE_ACCEPTED: EventCategory.NUDGE,
    EventKind.NUDGE_DECLINED: EventCategory.NUDGE,
    EventKind.FALLBACK: EventCategory.FALLBACK,
}


class AttributeKey(str, Enum):
    """Closed vocabulary of event attribute keys."""

    DEVICE_INFO = "deviceInfo"
    ERROR_REASON = "errorReason"
    FALLBACK_METHOD = "fallbackMethod"
    NUDGE_CONTEXT = "nudgeContext"
    START_TIME = "startTime"


_ALLOWED_ATTRIBUTE_KEYS = frozenset(key.value for key in AttributeKey)

AttributeValue = str | int | float | bool


# ---------------------------------------------------------------------------
# Capture clock
# ---------------------------------------------------------------------------


class _CaptureClock:
    """Wall clock that never goes backwards within this process."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._last = 0.0

    def now(self) -> float:
        current = time.time()
        with self._lock:
            if current < self._last:
                current = self._last
            self._last = current
        return current


_CLOCK = _CaptureClock()


def capture_timestamp() -> float:
    """Return the capture time for a new event (epoch seconds)."""
    return _CLOCK.now()


def default_node_id() -> str:
    """Identify this process by the host MAC address."""
    node = uuid.getnode()
    return ":".join(f"{(node >> shift) & 0xFF:02x}" for shift in range(40, -8, -8))


_NODE_ID = default_node_id()


# ---------------------------------------------------------------------------
# PasskeyEvent
# ---------------------------------------------------------------------------


class PasskeyEvent(BaseModel):
    """A single immutable passkey lifecycle occurrence."""

    model_config = {"frozen": True}

    id: str = Field(
        default_factory=lambda: f"evt_{uuid.uuid4().hex}",
        description="Unique identifier, used as the storage key.",
    )
    kind: EventKind = Field(
        description="Which lifecycle occurrence this is.",
    )
    subject_id: str = Field(
        min_length=1,
        description="Opaque user or session identifier.",
    )
    outcome: bool = Field(
        default=True,
        description="Success indicator; meaning depends on kind.",
    )
    duration_ms: int = Field(
        default=0,
        ge=0,
        description="Elapsed milliseconds, 0 when not meaningful.",
    )
    attributes: Mapping[str, AttributeValue] = Field(
        default_factory=lambda: MappingProxyType({}),
        description="Kind-specific context keyed by AttributeKey values.",
    )
    occurred_at: float = Field(
        default_factory=capture_timestamp,
        description="Unix epoch when the event was captured.",
    )
    node_id: str = Field(
        default=_NODE_ID,
        description="Identifier of the emitting process.",
    )

    @field_validator("attributes")
    @classmethod
    def _known_attribute_keys(
        cls, value: Mapping[str, AttributeValue]
    ) -> Mapping[str, AttributeValue]:
        unknown = sorted(set(value) - _ALLOWED_ATTRIBUTE_KEYS)
        if unknown:
            raise ValueError(f"unknown attribute keys: {', '.join(unknown)}")
        # Read-only view over a private copy; the caller's dict stays detached
        return MappingProxyType(dict(value))

    @field_serializer("attributes")
    def _attributes_as_dict(
        self, value: Mapping[str, AttributeValue]
    ) -> dict[str, AttributeValue]:
        return dict(value)

    @property
    def category(self) -> EventCategory:
        return self.kind.category

    def attribute(self, key: AttributeKey) -> AttributeValue | None:
        return self.attributes.get(key.value)
