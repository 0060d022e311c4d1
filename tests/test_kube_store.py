import os
import sys
import unittest
from unittest.mock import MagicMock

project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.append(os.path.join(project_root, "lib"))

from kubernetes.client.rest import ApiException

from ttl_lib.config import Settings
from ttl_lib.errors import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    StoreError,
    UnsupportedKindError,
    translate_api_exception,
)
from ttl_lib.kinds import DEPLOYMENT, JOB, POD, SERVICE, build_target_kinds, select_target_kinds
from ttl_lib.kube_store import KubernetesStore
from ttl_lib.models import GroupVersionKind

CRD = dict(group="ttl.example.com", version="v1alpha1", plural="ttlresources")
TRACKING = GroupVersionKind("ttl.example.com", "v1alpha1", "TTLResource")


def api_error(status, reason="", body=None):
    e = ApiException(status=status, reason=reason)
    e.body = body
    return e


class TestTranslateApiException(unittest.TestCase):

    def test_not_found(self):
        self.assertIsInstance(translate_api_exception(api_error(404, "Not Found")), NotFoundError)

    def test_conflict_class_is_chosen_by_caller(self):
        self.assertIsInstance(translate_api_exception(api_error(409)), ConflictError)
        self.assertIsInstance(
            translate_api_exception(api_error(409), on_conflict=AlreadyExistsError), AlreadyExistsError
        )

    def test_other_statuses_are_store_errors(self):
        err = translate_api_exception(api_error(503, "Service Unavailable"))
        self.assertIsInstance(err, StoreError)
        self.assertEqual(err.status, 503)
        self.assertIn("Service Unavailable", str(err))

    def test_message_is_taken_from_body(self):
        err = translate_api_exception(api_error(422, "Unprocessable", '{"message": "spec.ttlSeconds: Invalid value"}'))
        self.assertEqual(str(err), "spec.ttlSeconds: Invalid value")


class TestKinds(unittest.TestCase):

    def setUp(self):
        self.core_api = MagicMock()
        self.apps_api = MagicMock()
        self.batch_api = MagicMock()
        self.table = build_target_kinds(self.core_api, self.apps_api, self.batch_api)

    def test_read_and_delete_use_typed_apis(self):
        self.table[DEPLOYMENT].read("default", "api")
        self.apps_api.read_namespaced_deployment.assert_called_once_with(name="api", namespace="default")

        self.table[POD].delete("default", "web", "opts")
        self.core_api.delete_namespaced_pod.assert_called_once_with(name="web", namespace="default", body="opts")

        self.table[JOB].read("default", "batch-1")
        self.batch_api.read_namespaced_job.assert_called_once_with(name="batch-1", namespace="default")

    def test_select_keeps_requested_order(self):
        selected = select_target_kinds(self.table, ["Deployment", "Pod"])
        self.assertEqual(list(selected), [DEPLOYMENT, POD])

    def test_select_rejects_unknown_kinds(self):
        with self.assertRaises(ValueError):
            select_target_kinds(self.table, ["Pod", "CronJob"])


class TestKubernetesStore(unittest.TestCase):

    def setUp(self):
        self.custom_api = MagicMock()
        self.api_client = MagicMock()
        self.core_api = MagicMock()
        self.apps_api = MagicMock()
        self.table = build_target_kinds(self.core_api, self.apps_api, MagicMock())
        self.store = KubernetesStore(Settings(), self.custom_api, self.api_client, self.table)
        self.body = {
            "apiVersion": "ttl.example.com/v1alpha1",
            "kind": "TTLResource",
            "metadata": {"name": "ttl-web", "namespace": "default", "resourceVersion": "12"},
            "spec": {"ttlSeconds": 5},
        }

    def test_target_order_and_support(self):
        self.assertEqual(self.store.tracking_gvk, TRACKING)
        self.assertEqual(self.store.target_gvks, (POD, SERVICE, DEPLOYMENT))
        self.assertTrue(self.store.supports(TRACKING))
        self.assertTrue(self.store.supports(SERVICE))
        self.assertTrue(self.store.supports(JOB))
        self.assertNotIn(JOB, self.store.target_gvks)
        self.assertFalse(self.store.supports(GroupVersionKind("batch", "v1", "CronJob")))

    def test_unknown_enabled_kind_is_rejected(self):
        with self.assertRaises(ValueError):
            KubernetesStore(Settings(target_kinds=("Pod", "Widget")), self.custom_api, self.api_client, self.table)

    def test_get_tracking_record(self):
        self.custom_api.get_namespaced_custom_object.return_value = self.body
        self.assertEqual(self.store.get(TRACKING, "default", "ttl-web"), self.body)
        self.custom_api.get_namespaced_custom_object.assert_called_once_with(
            namespace="default", name="ttl-web", **CRD
        )

    def test_get_target_serializes_model(self):
        pod = MagicMock()
        self.core_api.read_namespaced_pod.return_value = pod
        self.api_client.sanitize_for_serialization.return_value = {"metadata": {"name": "web"}}

        self.assertEqual(self.store.get(POD, "default", "web"), {"metadata": {"name": "web"}})
        self.api_client.sanitize_for_serialization.assert_called_once_with(pod)

    def test_get_not_found(self):
        self.core_api.read_namespaced_service.side_effect = api_error(404, "Not Found")
        with self.assertRaises(NotFoundError):
            self.store.get(SERVICE, "default", "web")

    def test_get_unsupported_kind(self):
        with self.assertRaises(UnsupportedKindError):
            self.store.get(JOB, "default", "web")

    def test_create_conflict_is_already_exists(self):
        self.custom_api.create_namespaced_custom_object.side_effect = api_error(409, "Conflict")
        with self.assertRaises(AlreadyExistsError):
            self.store.create(TRACKING, self.body)

    def test_create_only_for_tracking_kind(self):
        with self.assertRaises(UnsupportedKindError):
            self.store.create(POD, self.body)
        self.custom_api.create_namespaced_custom_object.assert_not_called()

    def test_update_replaces_with_resource_version(self):
        self.store.update(TRACKING, self.body)
        self.custom_api.replace_namespaced_custom_object.assert_called_once_with(
            namespace="default", name="ttl-web", body=self.body, **CRD
        )
        self.assertEqual(
            self.custom_api.replace_namespaced_custom_object.call_args.kwargs["body"]["metadata"]["resourceVersion"],
            "12",
        )

    def test_update_status_conflict(self):
        self.custom_api.replace_namespaced_custom_object_status.side_effect = api_error(409, "Conflict")
        with self.assertRaises(ConflictError):
            self.store.update_status(TRACKING, self.body)

    def test_update_status_server_error(self):
        self.custom_api.replace_namespaced_custom_object_status.side_effect = api_error(500, "Internal Server Error")
        with self.assertRaises(StoreError):
            self.store.update_status(TRACKING, self.body)

    def test_delete_tracking_with_uid_precondition(self):
        self.store.delete(TRACKING, "default", "ttl-web", uid="abc")

        kwargs = self.custom_api.delete_namespaced_custom_object.call_args.kwargs
        self.assertEqual(kwargs["name"], "ttl-web")
        self.assertEqual(kwargs["body"].preconditions.uid, "abc")

    def test_delete_target_without_uid(self):
        self.store.delete(POD, "default", "web")

        kwargs = self.core_api.delete_namespaced_pod.call_args.kwargs
        self.assertEqual((kwargs["name"], kwargs["namespace"]), ("web", "default"))
        self.assertIsNone(kwargs["body"].preconditions)

    def test_delete_owner_of_kind_no_longer_enabled(self):
        store = KubernetesStore(Settings(target_kinds=("Pod",)), self.custom_api, self.api_client, self.table)
        self.assertEqual(store.target_gvks, (POD,))

        store.delete(DEPLOYMENT, "default", "api", uid="u1")

        kwargs = self.apps_api.delete_namespaced_deployment.call_args.kwargs
        self.assertEqual((kwargs["name"], kwargs["namespace"]), ("api", "default"))
        self.assertEqual(kwargs["body"].preconditions.uid, "u1")

    def test_delete_not_found(self):
        self.core_api.delete_namespaced_pod.side_effect = api_error(404, "Not Found")
        with self.assertRaises(NotFoundError):
            self.store.delete(POD, "default", "web", uid="abc")

    def test_list_source_cluster_wide(self):
        fn, kwargs = self.store.list_source(TRACKING)
        self.assertIs(fn, self.custom_api.list_cluster_custom_object)
        self.assertEqual(kwargs, CRD)

        fn, kwargs = self.store.list_source(POD)
        self.assertIs(fn, self.core_api.list_pod_for_all_namespaces)
        self.assertEqual(kwargs, {})

    def test_list_source_namespaced(self):
        store = KubernetesStore(
            Settings(namespace="apps"), self.custom_api, self.api_client,
            build_target_kinds(self.core_api, MagicMock(), MagicMock()),
        )
        fn, kwargs = store.list_source(TRACKING)
        self.assertIs(fn, self.custom_api.list_namespaced_custom_object)
        self.assertEqual(kwargs, dict(namespace="apps", **CRD))

        fn, kwargs = store.list_source(SERVICE)
        self.assertIs(fn, self.core_api.list_namespaced_service)
        self.assertEqual(kwargs, {"namespace": "apps"})


if __name__ == '__main__':
    unittest.main()
