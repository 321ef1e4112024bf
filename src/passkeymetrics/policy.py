"""Policy gate — per-event recording decisions and enrichment.

Pure functions of the event and the current ``MetricsSnapshot``.  They run
unconditionally on the producer path, so they do no I/O and allocate only
when an attribute actually changes.
"""

from __future__ import annotations

import re
from enum import Enum
from types import MappingProxyType

from passkeymetrics.events import AttributeKey
from passkeymetrics.events import EventCategory
from passkeymetrics.events import EventKind
from passkeymetrics.events import PasskeyEvent
from passkeymetrics.snapshot import MetricsSnapshot


class ErrorCategory(str, Enum):
    """Fixed categories free-text error reasons collapse into."""

    TIMEOUT = "TIMEOUT"
    USER_CANCELLED = "USER_CANCELLED"
    NOT_ALLOWED = "NOT_ALLOWED"
    INVALID_CREDENTIAL = "INVALID_CREDENTIAL"
    UNKNOWN_CREDENTIAL = "UNKNOWN_CREDENTIAL"
    UNSUPPORTED_DEVICE = "UNSUPPORTED_DEVICE"
    NETWORK = "NETWORK"
    SERVER_ERROR = "SERVER_ERROR"
    OTHER = "OTHER"


# First match wins, so more specific patterns come first.
_ERROR_PATTERNS: tuple[tuple[re.Pattern[str], ErrorCategory], ...] = (
    (re.compile(r"time[\s_-]?out|timed[\s_-]?out|expired challenge"), ErrorCategory.TIMEOUT),
    (re.compile(r"cancel|abort|dismiss"), ErrorCategory.USER_CANCELLED),
    (re.compile(r"notallowed|not[\s_-]allowed|denied|forbidden"), ErrorCategory.NOT_ALLOWED),
    (
        re.compile(r"unknown credential|credential not found|no credential|unregistered"),
        ErrorCategory.UNKNOWN_CREDENTIAL,
    ),
    (
        re.compile(
            r"signature|invalid credential|attestation|assertion"
            r"|sign ?count|\borigin\b|\brp ?id\b"
        ),
        ErrorCategory.INVALID_CREDENTIAL,
    ),
    (
        re.compile(r"not supported|unsupported|notsupported|authenticator unavailable"),
        ErrorCategory.UNSUPPORTED_DEVICE,
    ),
    (re.compile(r"network|connection|unreachable|\bdns\b"), ErrorCategory.NETWORK),
    (re.compile(r"internal|server error|exception|\b5\d\d\b"), ErrorCategory.SERVER_ERROR),
)

_CATEGORY_VALUES = frozenset(category.value for category in ErrorCategory)


def categorize_error(reason: str) -> ErrorCategory:
    """Map a free-text error reason onto an ``ErrorCategory``."""
    if reason in _CATEGORY_VALUES:
        return ErrorCategory(reason)
    text = reason.lower()
    for pattern, category in _ERROR_PATTERNS:
        if pattern.search(text):
            return category
    return ErrorCategory.OTHER


def should_record(kind: EventKind, snapshot: MetricsSnapshot | None) -> bool:
    """Decide whether events of *kind* are recorded under *snapshot*.

    A missing snapshot means the configuration could not be read and is
    treated as "metrics disabled".
    """
    if snapshot is None or not snapshot.metrics_enabled:
        return False
    category = kind.category
    if category is EventCategory.REGISTRATION:
        return snapshot.registration_enabled
    if category is EventCategory.AUTHENTICATION:
        return snapshot.authentication_enabled
    return True


def enrich(event: PasskeyEvent, snapshot: MetricsSnapshot) -> PasskeyEvent:
    """Apply the snapshot's collection settings to *event*.

    Returns *event* itself when nothing changes, otherwise a copy.
    """
    attributes = event.attributes
    changed = False

    device_key = AttributeKey.DEVICE_INFO.value
    if not snapshot.device_info_collection_enabled and device_key in attributes:
        attributes = {k: v for k, v in attributes.items() if k != device_key}
        changed = True

    reason_key = AttributeKey.ERROR_REASON.value
    reason = attributes.get(reason_key)
    if snapshot.error_categorization_enabled and reason is not None:
        category = categorize_error(str(reason)).value
        if category != reason:
            attributes = {**attributes, reason_key: category}
            changed = True

    if not changed:
        return event
    # model_copy skips validation, so freeze the new mapping here
    return event.model_copy(update={"attributes": MappingProxyType(dict(attributes))})
