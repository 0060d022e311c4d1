"""
TTL state machine for tracking records.

    Unset          ttlSeconds <= 0, never expires, status is never touched
    Uninitialized  createdAt unknown
    Scheduled      createdAt known, expiredAt known (or about to be), not expired;
                   an expiry beyond datetime.max is never reached
    Expired        expired == True

evaluate() is pure: it looks at a record and the current time and says which
status to persist (if any) and what the caller should do next. Deleting the
record and its target on expiry is the caller's job.
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .models import TrackingRecord, TTLStatus


class State(enum.Enum):
    UNSET = 'Unset'
    UNINITIALIZED = 'Uninitialized'
    SCHEDULED = 'Scheduled'
    EXPIRED = 'Expired'


@dataclass(frozen=True)
class Transition:
    state: State
    # Status to write back, or None when nothing changed
    status: Optional[TTLStatus] = None
    # Seconds until the record should be looked at again
    requeue_after: Optional[float] = None
    cascade: bool = False


def state_of(record: TrackingRecord) -> State:
    if record.ttl_seconds <= 0:
        return State.UNSET
    if record.status.expired:
        return State.EXPIRED
    if record.status.created_at is None:
        return State.UNINITIALIZED
    return State.SCHEDULED


def expiry_of(created_at: datetime, ttl_seconds: int) -> Optional[datetime]:
    """createdAt + ttlSeconds, or None when that is past datetime.max."""
    try:
        return created_at + timedelta(seconds=ttl_seconds)
    except OverflowError:
        return None


def reset_status() -> TTLStatus:
    """Status that sends a record back to Uninitialized after a spec change."""
    return TTLStatus()


def evaluate(record: TrackingRecord, now: datetime) -> Transition:
    state = state_of(record)
    status = record.status

    if state is State.UNSET:
        return Transition(state)

    if state is State.EXPIRED:
        return Transition(state, cascade=True)

    if state is State.UNINITIALIZED:
        # Persist createdAt on its own and re-observe before going further.
        created_at = record.creation_timestamp or now
        return Transition(state, status=status.evolve(created_at=created_at), requeue_after=0.0)

    expected = expiry_of(status.created_at, record.ttl_seconds)
    if expected is None:
        # Unrepresentable expiry never comes; drop any expiredAt left behind
        if status.expired_at is not None:
            return Transition(state, status=status.evolve(expired_at=None))
        return Transition(state)

    if status.expired_at != expected:
        # Unset, or left over from a previous ttlSeconds whose reset never landed
        remaining = (expected - now).total_seconds()
        return Transition(state, status=status.evolve(expired_at=expected), requeue_after=max(0.0, remaining))

    if now >= status.expired_at:
        return Transition(State.EXPIRED, status=status.evolve(expired=True), cascade=True)

    return Transition(state, requeue_after=(status.expired_at - now).total_seconds())
