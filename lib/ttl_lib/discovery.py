"""
Discovery reconciler.

Receives keys for tracking records and for every watched target kind. Keys
that name a tracking record are handed to the TrackingReconciler; keys that
name a target keep that target's managed tracking record in line with its TTL
annotation, and remove the record once the target or its annotation is gone.
"""

import logging
from typing import Optional

from .config import Settings
from .errors import AlreadyExistsError, ConflictError, NotFoundError
from .manifest_templates import ttlresource_template
from .models import Result, TargetResource, TrackingRecord, parse_ttl_annotation
from .tracking import TrackingReconciler
from .ttl_state import reset_status

logger = logging.getLogger(__name__)


class DiscoveryReconciler:

    def __init__(self, store, tracking: TrackingReconciler, settings: Settings):
        self._store = store
        self._tracking = tracking
        self._settings = settings

    @property
    def gvk(self):
        return self._store.tracking_gvk

    def reconcile(self, namespace: str, name: str) -> Result:
        # Tracking records are reconciled the same way whichever watch delivered them
        try:
            obj = self._store.get(self.gvk, namespace, name)
        except NotFoundError:
            pass
        else:
            return self._tracking.reconcile_record(TrackingRecord.from_dict(obj))

        target = self._find_target(namespace, name)
        if target is None:
            return self.cleanup(namespace, name)

        if target.deleting:
            return self.cleanup(namespace, name)

        raw_ttl = target.annotations.get(self._settings.ttl_annotation_key)
        ttl_seconds = parse_ttl_annotation(raw_ttl)
        if ttl_seconds is None:
            if raw_ttl is not None:
                logger.info('Invalid TTL annotation value %r on %s %s/%s, ignoring',
                            raw_ttl, target.gvk.kind, namespace, name)
            return self.cleanup(namespace, name)

        return self._ensure_record(target, ttl_seconds)

    def _find_target(self, namespace: str, name: str) -> Optional[TargetResource]:
        """Probe target kinds in priority order."""
        for gvk in self._store.target_gvks:
            try:
                obj = self._store.get(gvk, namespace, name)
            except NotFoundError:
                continue
            return TargetResource.from_dict(gvk, obj)
        return None

    def _ensure_record(self, target: TargetResource, ttl_seconds: int) -> Result:
        record_name = self._settings.record_name(target.name)
        try:
            existing = TrackingRecord.from_dict(self._store.get(self.gvk, target.namespace, record_name))
        except NotFoundError:
            return self._create_record(target, record_name, ttl_seconds)

        if not self._settings.is_managed(existing.labels):
            logger.info('TTLResource %s/%s is not managed by this controller, leaving it alone',
                        target.namespace, record_name)
            return Result.done()

        if existing.ttl_seconds != ttl_seconds:
            self._update_ttl(existing, ttl_seconds)
        # From here on the record's own reconciliation owns expiry
        return Result.done()

    def _create_record(self, target: TargetResource, record_name: str, ttl_seconds: int) -> Result:
        body = ttlresource_template(
            self._settings,
            name=record_name,
            namespace=target.namespace,
            ttl_seconds=ttl_seconds,
            owner_ref=target.owner_reference(),
            labels=self._settings.managed_labels(),
        )
        try:
            self._store.create(self.gvk, body)
        except AlreadyExistsError:
            return Result.done()
        logger.info('Created TTLResource %s/%s for %s %s (ttlSeconds=%d)',
                    target.namespace, record_name, target.gvk.kind, target.name, ttl_seconds)
        return Result.done()

    def _update_ttl(self, record: TrackingRecord, ttl_seconds: int) -> None:
        """Change ttlSeconds and send the record back to Uninitialized.

        Conflicts are left to the record's own reconciliation rather than retried.
        """
        try:
            updated = self._store.update(self.gvk, record.with_ttl_seconds(ttl_seconds))
            fresh = TrackingRecord.from_dict(updated)
            self._store.update_status(self.gvk, fresh.with_status(reset_status()))
        except (ConflictError, NotFoundError) as e:
            logger.debug('Could not update TTLResource %s/%s (%s), deferring to its reconciliation',
                         record.namespace, record.name, e.__class__.__name__)
            return
        logger.info('Updated TTLResource %s/%s (ttlSeconds=%d)', record.namespace, record.name, ttl_seconds)

    def cleanup(self, namespace: str, name: str) -> Result:
        """Delete the managed tracking record of a target that is gone or has no TTL."""
        record_name = self._settings.record_name(name)
        try:
            record = TrackingRecord.from_dict(self._store.get(self.gvk, namespace, record_name))
        except NotFoundError:
            return Result.done()

        if not self._settings.is_managed(record.labels):
            return Result.done()

        try:
            self._store.delete(self.gvk, namespace, record_name, uid=record.uid)
        except (NotFoundError, ConflictError):
            return Result.done()
        logger.info('Deleted TTLResource %s/%s', namespace, record_name)
        return Result.done()
