"""
Configuration for the TTL operator.

Values come from environment variables (and a .env file, if present) and are
collected into an immutable Settings object that is handed to every component.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv

# Kubernetes CRD configuration
CRD_GROUP = 'ttl.example.com'
CRD_VERSION = 'v1alpha1'
CRD_PLURAL = 'ttlresources'
CRD_KIND = 'TTLResource'

# Annotation / label keys
ANNOTATION_TTL_SECONDS = 'ttl.example.com/ttl-seconds'
LABEL_MANAGED_BY = 'ttl.example.com/managed-by'
LABEL_MANAGED_BY_VALUE = 'resource-controller'
LABEL_APP_MANAGED_BY = 'app.kubernetes.io/managed-by'
APP_NAME = 'ttl-operator'

DEFAULT_TARGET_KINDS = ('Pod', 'Service', 'Deployment')


@dataclass(frozen=True)
class Settings:
    ttl_annotation_key: str = ANNOTATION_TTL_SECONDS
    managed_by_label_key: str = LABEL_MANAGED_BY
    managed_by_label_value: str = LABEL_MANAGED_BY_VALUE
    record_name_prefix: str = 'ttl-'

    crd_group: str = CRD_GROUP
    crd_version: str = CRD_VERSION
    crd_plural: str = CRD_PLURAL
    crd_kind: str = CRD_KIND

    namespace: Optional[str] = None
    target_kinds: Tuple[str, ...] = field(default=DEFAULT_TARGET_KINDS)

    conflict_requeue_seconds: float = 1.0
    workers: int = 4
    watch_timeout_seconds: int = 300
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        """Build settings from the environment.

        When ``environ`` is omitted the process environment is used, after
        loading a .env file from the working directory.
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        kinds = environ.get('TTL_TARGET_KINDS')
        target_kinds = DEFAULT_TARGET_KINDS
        if kinds:
            target_kinds = tuple(k.strip() for k in kinds.split(',') if k.strip())

        return cls(
            ttl_annotation_key=environ.get('TTL_ANNOTATION_KEY', ANNOTATION_TTL_SECONDS),
            managed_by_label_key=environ.get('TTL_MANAGED_BY_LABEL_KEY', LABEL_MANAGED_BY),
            managed_by_label_value=environ.get('TTL_MANAGED_BY_LABEL_VALUE', LABEL_MANAGED_BY_VALUE),
            record_name_prefix=environ.get('TTL_RECORD_PREFIX', 'ttl-'),
            namespace=environ.get('TTL_NAMESPACE') or None,
            target_kinds=target_kinds,
            conflict_requeue_seconds=float(environ.get('TTL_CONFLICT_REQUEUE_SECONDS', '1.0')),
            workers=int(environ.get('TTL_WORKERS', '4')),
            watch_timeout_seconds=int(environ.get('TTL_WATCH_TIMEOUT_SECONDS', '300')),
            log_level=environ.get('LOG_LEVEL', 'INFO').upper(),
        )

    @property
    def api_version(self) -> str:
        return f'{self.crd_group}/{self.crd_version}'

    def record_name(self, target_name: str) -> str:
        """Name of the managed tracking record for a target."""
        return f'{self.record_name_prefix}{target_name}'

    def managed_labels(self) -> Dict[str, str]:
        return {
            self.managed_by_label_key: self.managed_by_label_value,
            LABEL_APP_MANAGED_BY: APP_NAME,
        }

    def is_managed(self, labels: Optional[Mapping[str, str]]) -> bool:
        return (labels or {}).get(self.managed_by_label_key) == self.managed_by_label_value
