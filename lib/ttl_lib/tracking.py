"""
Reconciler for TTLResource tracking records.

Drives a record through the TTL state machine, persists status transitions
with conditional writes and, once the record has expired, deletes the target
it shadows followed by the record itself.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from .config import Settings
from .errors import ConflictError, NotFoundError
from .models import Result, TrackingRecord
from .resolver import OwnerKindResolver
from .ttl_state import Transition, evaluate

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TrackingReconciler:

    def __init__(
        self,
        store,
        resolver: OwnerKindResolver,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._resolver = resolver
        self._settings = settings
        self._clock = clock

    @property
    def gvk(self):
        return self._store.tracking_gvk

    def reconcile(self, namespace: str, name: str) -> Result:
        try:
            obj = self._store.get(self.gvk, namespace, name)
        except NotFoundError:
            # Already deleted
            return Result.done()
        return self.reconcile_record(TrackingRecord.from_dict(obj))

    def reconcile_record(self, record: TrackingRecord) -> Result:
        transition = evaluate(record, self._clock())

        if transition.status is not None:
            outcome = self._write_status(record, transition)
            if outcome is not None:
                return outcome

        if transition.cascade:
            return self._cascade(record)

        if transition.requeue_after is not None:
            return Result.after(transition.requeue_after)
        return Result.done()

    def _write_status(self, record: TrackingRecord, transition: Transition) -> Optional[Result]:
        """Persist the transition's status. Returns a Result if reconciliation must stop here."""
        try:
            self._store.update_status(self.gvk, record.with_status(transition.status))
        except ConflictError:
            logger.debug('Conflict updating status of %s/%s, will retry', record.namespace, record.name)
            return Result.after(self._settings.conflict_requeue_seconds)
        except NotFoundError:
            logger.debug('%s/%s not found, may have been deleted', record.namespace, record.name)
            return Result.done()

        if transition.status.expired:
            logger.info('TTL expired for %s/%s (expiredAt=%s)',
                        record.namespace, record.name, transition.status.expired_at)
        else:
            logger.info('Updated status of %s/%s (createdAt=%s, expiredAt=%s)',
                        record.namespace, record.name,
                        transition.status.created_at, transition.status.expired_at)
        return None

    def _cascade(self, record: TrackingRecord) -> Result:
        # Fresh read: the record may have been reset or recreated since it was evaluated.
        try:
            latest = TrackingRecord.from_dict(self._store.get(self.gvk, record.namespace, record.name))
        except NotFoundError:
            return Result.done()

        if latest.uid != record.uid:
            logger.debug('UID mismatch for %s/%s (old=%s, new=%s), resource was recreated',
                         record.namespace, record.name, record.uid, latest.uid)
            return Result.done()
        if not latest.status.expired:
            logger.debug('%s/%s is no longer expired, skipping deletion', record.namespace, record.name)
            return Result.done()

        self._delete_owner(latest)

        try:
            self._store.delete(self.gvk, latest.namespace, latest.name, uid=latest.uid)
        except NotFoundError:
            return Result.done()
        except ConflictError:
            logger.debug('UID precondition failed deleting %s/%s, resource was recreated',
                         latest.namespace, latest.name)
            return Result.done()

        logger.info('TTLResource %s/%s expired and deleted', latest.namespace, latest.name)
        return Result.done()

    def _delete_owner(self, record: TrackingRecord) -> None:
        """Best effort: a failure here must not keep the record around."""
        if not record.owner_references:
            return
        owner_ref = record.owner_references[0]
        try:
            self._resolver.delete_owner(owner_ref, record.namespace)
        except NotFoundError:
            logger.debug('Owner %s %s/%s already gone', owner_ref.kind, record.namespace, owner_ref.name)
        except Exception:
            logger.exception('Failed to delete owner %s %s/%s of %s',
                             owner_ref.kind, record.namespace, owner_ref.name, record.name)
        else:
            logger.info('Deleted owner resource %s %s/%s', owner_ref.kind, record.namespace, owner_ref.name)
