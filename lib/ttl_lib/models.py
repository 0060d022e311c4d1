"""
Data model for tracking records and the resources they shadow.

Objects travel through the store as plain dicts in wire form (camelCase keys,
RFC 3339 timestamps). The classes here are read-only views over those dicts.
"""

import copy
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional


class GroupVersionKind(NamedTuple):
    group: str
    version: str
    kind: str

    @property
    def api_version(self) -> str:
        if self.group:
            return f'{self.group}/{self.version}'
        return self.version

    def __str__(self) -> str:
        return f'{self.api_version}, Kind={self.kind}'


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp into an aware UTC datetime."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        ts = value
    else:
        ts = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    # Ensure the timestamp is timezone-aware
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


_DIGITS = re.compile(r'[0-9]+')

# Largest accepted ttlSeconds (int32 max, about 68 years)
MAX_TTL_SECONDS = 2**31 - 1


def parse_ttl_annotation(value: Optional[str]) -> Optional[int]:
    """Return the TTL in seconds, or None when the annotation means "no TTL".

    Only plain base-10 digits are accepted: no sign, no surrounding
    whitespace. Absent, malformed, non-positive and out-of-range values are
    all treated as no TTL.
    """
    if value is None or not _DIGITS.fullmatch(value):
        return None
    seconds = int(value)
    if seconds <= 0 or seconds > MAX_TTL_SECONDS:
        return None
    return seconds


@dataclass(frozen=True)
class OwnerReference:
    api_version: str
    kind: str
    name: str
    uid: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OwnerReference':
        return cls(
            api_version=data.get('apiVersion', ''),
            kind=data.get('kind', ''),
            name=data.get('name', ''),
            uid=data.get('uid', ''),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'apiVersion': self.api_version,
            'kind': self.kind,
            'name': self.name,
            'uid': self.uid,
        }


@dataclass(frozen=True)
class TTLStatus:
    expired: bool = False
    created_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'TTLStatus':
        data = data or {}
        return cls(
            expired=bool(data.get('expired', False)),
            created_at=parse_timestamp(data.get('createdAt')),
            expired_at=parse_timestamp(data.get('expiredAt')),
        )

    def to_dict(self) -> Dict[str, Any]:
        status: Dict[str, Any] = {'expired': self.expired}
        # Unknown timestamps are omitted rather than null
        if self.created_at is not None:
            status['createdAt'] = format_timestamp(self.created_at)
        if self.expired_at is not None:
            status['expiredAt'] = format_timestamp(self.expired_at)
        return status

    def evolve(self, **changes) -> 'TTLStatus':
        return replace(self, **changes)


@dataclass(frozen=True)
class TrackingRecord:
    """A TTLResource as read from the store."""

    namespace: str
    name: str
    uid: str
    resource_version: Optional[str]
    creation_timestamp: Optional[datetime]
    ttl_seconds: int
    status: TTLStatus
    labels: Dict[str, str] = field(default_factory=dict)
    owner_references: List[OwnerReference] = field(default_factory=list)
    body: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrackingRecord':
        metadata = data.get('metadata', {})
        spec = data.get('spec') or {}
        return cls(
            namespace=metadata.get('namespace', ''),
            name=metadata.get('name', ''),
            uid=metadata.get('uid', ''),
            resource_version=metadata.get('resourceVersion'),
            creation_timestamp=parse_timestamp(metadata.get('creationTimestamp')),
            ttl_seconds=int(spec.get('ttlSeconds', 0) or 0),
            status=TTLStatus.from_dict(data.get('status')),
            labels=dict(metadata.get('labels') or {}),
            owner_references=[
                OwnerReference.from_dict(ref) for ref in metadata.get('ownerReferences') or []
            ],
            body=data,
        )

    def with_status(self, status: TTLStatus) -> Dict[str, Any]:
        """Body for a status write, carrying this read's resourceVersion."""
        body = copy.deepcopy(self.body)
        body['status'] = status.to_dict()
        return body

    def with_ttl_seconds(self, ttl_seconds: int) -> Dict[str, Any]:
        """Body for a spec write, carrying this read's resourceVersion."""
        body = copy.deepcopy(self.body)
        body.setdefault('spec', {})['ttlSeconds'] = ttl_seconds
        return body


@dataclass(frozen=True)
class TargetResource:
    """A resource of one of the watched kinds, possibly carrying a TTL annotation."""

    gvk: GroupVersionKind
    namespace: str
    name: str
    uid: str
    annotations: Dict[str, str] = field(default_factory=dict)
    deleting: bool = False

    @classmethod
    def from_dict(cls, gvk: GroupVersionKind, data: Dict[str, Any]) -> 'TargetResource':
        metadata = data.get('metadata', {})
        return cls(
            gvk=gvk,
            namespace=metadata.get('namespace', ''),
            name=metadata.get('name', ''),
            uid=metadata.get('uid', ''),
            annotations=dict(metadata.get('annotations') or {}),
            deleting=metadata.get('deletionTimestamp') is not None,
        )

    def owner_reference(self) -> OwnerReference:
        return OwnerReference(
            api_version=self.gvk.api_version,
            kind=self.gvk.kind,
            name=self.name,
            uid=self.uid,
        )


@dataclass(frozen=True)
class Result:
    """Outcome of one reconciliation.

    ``requeue_after`` is None when no timer is needed, otherwise the number of
    seconds after which the key should be reconciled again (0 = immediately).
    """

    requeue_after: Optional[float] = None

    @classmethod
    def done(cls) -> 'Result':
        return cls()

    @classmethod
    def after(cls, seconds: float) -> 'Result':
        return cls(requeue_after=max(0.0, seconds))
