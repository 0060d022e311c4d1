"""
Kubernetes-backed object store used by the reconcilers.

Objects are exchanged as plain dicts in wire form. Updates use replace
semantics so the body's metadata.resourceVersion acts as the expected version,
and the API server rejects stale writes with 409.
"""

from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from kubernetes import client
from kubernetes.client.rest import ApiException

from .config import Settings
from .errors import AlreadyExistsError, UnsupportedKindError, translate_api_exception
from .kinds import TargetKind, select_target_kinds
from .models import GroupVersionKind


class KubernetesStore:

    def __init__(
        self,
        settings: Settings,
        custom_api: client.CustomObjectsApi,
        api_client: client.ApiClient,
        target_kinds: Mapping[GroupVersionKind, TargetKind],
    ):
        """``target_kinds`` is every kind the store can read and delete.

        Only the kinds named in ``settings.target_kinds`` are watched and
        probed, but owners of any known kind can still be deleted.
        """
        self.settings = settings
        self._custom_api = custom_api
        self._api_client = api_client
        self._target_kinds = dict(target_kinds)
        self._enabled = tuple(select_target_kinds(self._target_kinds, settings.target_kinds))
        self.tracking_gvk = GroupVersionKind(settings.crd_group, settings.crd_version, settings.crd_kind)

    @property
    def target_gvks(self) -> Tuple[GroupVersionKind, ...]:
        """Enabled target kinds, in probing order."""
        return self._enabled

    def supports(self, gvk: GroupVersionKind) -> bool:
        return gvk == self.tracking_gvk or gvk in self._target_kinds

    def _target(self, gvk: GroupVersionKind) -> TargetKind:
        try:
            return self._target_kinds[gvk]
        except KeyError:
            raise UnsupportedKindError(f'unsupported resource type: {gvk}') from None

    def _require_tracking(self, gvk: GroupVersionKind, operation: str) -> None:
        if gvk != self.tracking_gvk:
            raise UnsupportedKindError(f'{operation} is not supported for {gvk}')

    def _custom_kwargs(self) -> Dict[str, str]:
        return {
            'group': self.settings.crd_group,
            'version': self.settings.crd_version,
            'plural': self.settings.crd_plural,
        }

    def get(self, gvk: GroupVersionKind, namespace: str, name: str) -> Dict[str, Any]:
        try:
            if gvk == self.tracking_gvk:
                return self._custom_api.get_namespaced_custom_object(
                    namespace=namespace, name=name, **self._custom_kwargs()
                )
            obj = self._target(gvk).read(namespace, name)
        except ApiException as e:
            raise translate_api_exception(e) from e
        return self._api_client.sanitize_for_serialization(obj)

    def create(self, gvk: GroupVersionKind, body: Dict[str, Any]) -> Dict[str, Any]:
        self._require_tracking(gvk, 'create')
        try:
            return self._custom_api.create_namespaced_custom_object(
                namespace=body['metadata']['namespace'], body=body, **self._custom_kwargs()
            )
        except ApiException as e:
            raise translate_api_exception(e, on_conflict=AlreadyExistsError) from e

    def update(self, gvk: GroupVersionKind, body: Dict[str, Any]) -> Dict[str, Any]:
        self._require_tracking(gvk, 'update')
        metadata = body['metadata']
        try:
            return self._custom_api.replace_namespaced_custom_object(
                namespace=metadata['namespace'], name=metadata['name'], body=body, **self._custom_kwargs()
            )
        except ApiException as e:
            raise translate_api_exception(e) from e

    def update_status(self, gvk: GroupVersionKind, body: Dict[str, Any]) -> Dict[str, Any]:
        self._require_tracking(gvk, 'update_status')
        metadata = body['metadata']
        try:
            return self._custom_api.replace_namespaced_custom_object_status(
                namespace=metadata['namespace'], name=metadata['name'], body=body, **self._custom_kwargs()
            )
        except ApiException as e:
            raise translate_api_exception(e) from e

    def delete(self, gvk: GroupVersionKind, namespace: str, name: str, uid: Optional[str] = None) -> None:
        """Delete an object, optionally only if it still has the given UID.

        A failed UID precondition is reported as ConflictError.
        """
        if uid:
            options = client.V1DeleteOptions(preconditions=client.V1Preconditions(uid=uid))
        else:
            options = client.V1DeleteOptions()
        try:
            if gvk == self.tracking_gvk:
                self._custom_api.delete_namespaced_custom_object(
                    namespace=namespace, name=name, body=options, **self._custom_kwargs()
                )
            else:
                self._target(gvk).delete(namespace, name, options)
        except ApiException as e:
            raise translate_api_exception(e) from e

    def list_source(self, gvk: GroupVersionKind) -> Tuple[Callable[..., Any], Dict[str, Any]]:
        """List function and kwargs for watching a kind, honoring the namespace scope."""
        namespace = self.settings.namespace
        if gvk == self.tracking_gvk:
            if namespace:
                return self._custom_api.list_namespaced_custom_object, dict(namespace=namespace, **self._custom_kwargs())
            return self._custom_api.list_cluster_custom_object, self._custom_kwargs()
        kind = self._target(gvk)
        if namespace:
            return kind.list_namespaced, {'namespace': namespace}
        return kind.list_all, {}
