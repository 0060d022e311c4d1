"""
Capability table for the resource kinds a TTL annotation may be placed on.

Each entry maps a (group, version, kind) triple to the typed client calls used
to read, delete and watch that kind. Adding a kind means adding an entry here.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List

from kubernetes import client

from .models import GroupVersionKind

POD = GroupVersionKind('', 'v1', 'Pod')
SERVICE = GroupVersionKind('', 'v1', 'Service')
CONFIG_MAP = GroupVersionKind('', 'v1', 'ConfigMap')
DEPLOYMENT = GroupVersionKind('apps', 'v1', 'Deployment')
STATEFUL_SET = GroupVersionKind('apps', 'v1', 'StatefulSet')
JOB = GroupVersionKind('batch', 'v1', 'Job')


@dataclass(frozen=True)
class TargetKind:
    gvk: GroupVersionKind
    # read(namespace, name) -> API model
    read: Callable[[str, str], Any]
    # delete(namespace, name, body) -> None
    delete: Callable[[str, str, Any], Any]
    # list functions usable with kubernetes.watch.Watch().stream
    list_namespaced: Callable[..., Any]
    list_all: Callable[..., Any]


def build_target_kinds(
    core_api: client.CoreV1Api,
    apps_api: client.AppsV1Api,
    batch_api: client.BatchV1Api,
) -> Dict[GroupVersionKind, TargetKind]:
    """Return every supported kind, keyed by GroupVersionKind."""
    kinds = [
        TargetKind(
            gvk=POD,
            read=lambda ns, name: core_api.read_namespaced_pod(name=name, namespace=ns),
            delete=lambda ns, name, body: core_api.delete_namespaced_pod(name=name, namespace=ns, body=body),
            list_namespaced=core_api.list_namespaced_pod,
            list_all=core_api.list_pod_for_all_namespaces,
        ),
        TargetKind(
            gvk=SERVICE,
            read=lambda ns, name: core_api.read_namespaced_service(name=name, namespace=ns),
            delete=lambda ns, name, body: core_api.delete_namespaced_service(name=name, namespace=ns, body=body),
            list_namespaced=core_api.list_namespaced_service,
            list_all=core_api.list_service_for_all_namespaces,
        ),
        TargetKind(
            gvk=DEPLOYMENT,
            read=lambda ns, name: apps_api.read_namespaced_deployment(name=name, namespace=ns),
            delete=lambda ns, name, body: apps_api.delete_namespaced_deployment(name=name, namespace=ns, body=body),
            list_namespaced=apps_api.list_namespaced_deployment,
            list_all=apps_api.list_deployment_for_all_namespaces,
        ),
        TargetKind(
            gvk=STATEFUL_SET,
            read=lambda ns, name: apps_api.read_namespaced_stateful_set(name=name, namespace=ns),
            delete=lambda ns, name, body: apps_api.delete_namespaced_stateful_set(name=name, namespace=ns, body=body),
            list_namespaced=apps_api.list_namespaced_stateful_set,
            list_all=apps_api.list_stateful_set_for_all_namespaces,
        ),
        TargetKind(
            gvk=JOB,
            read=lambda ns, name: batch_api.read_namespaced_job(name=name, namespace=ns),
            delete=lambda ns, name, body: batch_api.delete_namespaced_job(name=name, namespace=ns, body=body),
            list_namespaced=batch_api.list_namespaced_job,
            list_all=batch_api.list_job_for_all_namespaces,
        ),
        TargetKind(
            gvk=CONFIG_MAP,
            read=lambda ns, name: core_api.read_namespaced_config_map(name=name, namespace=ns),
            delete=lambda ns, name, body: core_api.delete_namespaced_config_map(name=name, namespace=ns, body=body),
            list_namespaced=core_api.list_namespaced_config_map,
            list_all=core_api.list_config_map_for_all_namespaces,
        ),
    ]
    return {kind.gvk: kind for kind in kinds}


def select_target_kinds(
    table: Dict[GroupVersionKind, TargetKind],
    names: Iterable[str],
) -> Dict[GroupVersionKind, TargetKind]:
    """Pick the enabled kinds by Kind name, keeping the order of ``names``.

    The order is the probing priority used when a key could name several kinds.
    """
    by_name = {gvk.kind: kind for gvk, kind in table.items()}
    selected: List[TargetKind] = []
    for name in names:
        if name not in by_name:
            raise ValueError(f'Unsupported target kind "{name}", expected one of {sorted(by_name)}')
        selected.append(by_name[name])
    return {kind.gvk: kind for kind in selected}
