from __future__ import annotations

import enum

from app.errors import InvalidTransition
from app.models import SummaryStatus


class SummaryEvent(str, enum.Enum):
    GENERATE = "generate"
    REGENERATE = "regenerate"
    STAFF_SIGN = "staff_sign"
    ADMIN_APPROVE = "admin_approve"
    ADMIN_REJECT = "admin_reject"
    REOPEN = "reopen"


# (current status, event) -> next status. ``None`` stands for "no summary yet".
TRANSITIONS: dict[tuple[SummaryStatus | None, SummaryEvent], SummaryStatus] = {
    (None, SummaryEvent.GENERATE): SummaryStatus.DRAFT,
    (SummaryStatus.DRAFT, SummaryEvent.REGENERATE): SummaryStatus.DRAFT,
    (SummaryStatus.REJECTED, SummaryEvent.REGENERATE): SummaryStatus.DRAFT,
    (SummaryStatus.DRAFT, SummaryEvent.STAFF_SIGN): SummaryStatus.SIGNED_BY_STAFF,
    (SummaryStatus.SIGNED_BY_STAFF, SummaryEvent.ADMIN_APPROVE): SummaryStatus.APPROVED,
    (SummaryStatus.SIGNED_BY_STAFF, SummaryEvent.ADMIN_REJECT): SummaryStatus.REJECTED,
    (SummaryStatus.SIGNED_BY_STAFF, SummaryEvent.REOPEN): SummaryStatus.DRAFT,
    (SummaryStatus.APPROVED, SummaryEvent.REOPEN): SummaryStatus.DRAFT,
}

REGENERABLE_STATUSES = frozenset({SummaryStatus.DRAFT, SummaryStatus.REJECTED})


def can_transition(current: SummaryStatus | None, event: SummaryEvent) -> bool:
    return (current, event) in TRANSITIONS


def next_status(current: SummaryStatus | None, event: SummaryEvent) -> SummaryStatus:
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        current_label = current.value if current is not None else "NONE"
        raise InvalidTransition(
            f"Cannot {event.value.replace('_', ' ')} a summary in status {current_label}."
        ) from None


def allowed_events(current: SummaryStatus | None) -> list[SummaryEvent]:
    return [event for (status, event) in TRANSITIONS if status == current]
