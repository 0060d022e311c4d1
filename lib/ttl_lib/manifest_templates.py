from .config import Settings
from .models import MAX_TTL_SECONDS


def ttlresource_template(settings: Settings, name, namespace, ttl_seconds, owner_ref=None, labels=None):
    metadata = {
        "name": name,
        "namespace": namespace,
    }
    if labels:
        metadata["labels"] = dict(labels)
    if owner_ref is not None:
        metadata["ownerReferences"] = [owner_ref.to_dict()]

    return {
        "apiVersion": settings.api_version,
        "kind": settings.crd_kind,
        "metadata": metadata,
        "spec": {
            "ttlSeconds": ttl_seconds
        }
    }


def ttlresource_crd_template(settings: Settings):
    singular = settings.crd_kind.lower()
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {
            "name": f"{settings.crd_plural}.{settings.crd_group}",
            "labels": {
                "app.kubernetes.io/name": "ttl-operator"
            }
        },
        "spec": {
            "group": settings.crd_group,
            "scope": "Namespaced",
            "names": {
                "kind": settings.crd_kind,
                "listKind": f"{settings.crd_kind}List",
                "plural": settings.crd_plural,
                "singular": singular
            },
            "versions": [
                {
                    "name": settings.crd_version,
                    "served": True,
                    "storage": True,
                    "subresources": {"status": {}},
                    "additionalPrinterColumns": [
                        {"name": "TTL", "type": "integer", "jsonPath": ".spec.ttlSeconds"},
                        {"name": "Expired", "type": "boolean", "jsonPath": ".status.expired"},
                        {"name": "ExpiredAt", "type": "string", "format": "date-time", "jsonPath": ".status.expiredAt"},
                        {"name": "Age", "type": "date", "jsonPath": ".metadata.creationTimestamp"}
                    ],
                    "schema": {
                        "openAPIV3Schema": {
                            "type": "object",
                            "description": f"{settings.crd_kind} tracks the time-to-live of a resource.",
                            "properties": {
                                "apiVersion": {"type": "string"},
                                "kind": {"type": "string"},
                                "metadata": {"type": "object"},
                                "spec": {
                                    "type": "object",
                                    "required": ["ttlSeconds"],
                                    "properties": {
                                        "ttlSeconds": {
                                            "type": "integer",
                                            "minimum": 0,
                                            "maximum": MAX_TTL_SECONDS,
                                            "description": "Seconds until expiry, counted from creation. 0 never expires."
                                        }
                                    }
                                },
                                "status": {
                                    "type": "object",
                                    "properties": {
                                        "expired": {"type": "boolean"},
                                        "createdAt": {"type": "string", "format": "date-time"},
                                        "expiredAt": {"type": "string", "format": "date-time"}
                                    }
                                }
                            }
                        }
                    }
                }
            ]
        }
    }
