"""
Maps owner references to deletion calls against the store.
"""

import logging
from typing import Tuple

from .errors import UnsupportedKindError
from .models import GroupVersionKind, OwnerReference

logger = logging.getLogger(__name__)


def parse_api_version(api_version: str) -> Tuple[str, str]:
    """Split an apiVersion into (group, version); the core group is ''."""
    parts = (api_version or '').split('/')
    if len(parts) == 1 and parts[0]:
        return '', parts[0]
    if len(parts) == 2 and parts[0] and parts[1]:
        return parts[0], parts[1]
    raise UnsupportedKindError(f'invalid apiVersion: "{api_version}"')


class OwnerKindResolver:
    """Resolves an owner reference to the target kind that can delete it.

    NotFound from the delete is passed through; callers decide that an
    already-absent owner counts as success.
    """

    def __init__(self, store):
        self._store = store

    def resolve(self, owner_ref: OwnerReference) -> GroupVersionKind:
        group, version = parse_api_version(owner_ref.api_version)
        gvk = GroupVersionKind(group, version, owner_ref.kind)
        if gvk == self._store.tracking_gvk or not self._store.supports(gvk):
            raise UnsupportedKindError(f'unsupported resource type: {gvk}')
        return gvk

    def delete_owner(self, owner_ref: OwnerReference, namespace: str) -> None:
        gvk = self.resolve(owner_ref)
        logger.debug('Deleting owner %s %s/%s', gvk.kind, namespace, owner_ref.name)
        self._store.delete(gvk, namespace, owner_ref.name, uid=owner_ref.uid or None)
