#!/usr/bin/env python3
"""
TTL operator - main entry point.

    ttl-operator run   watch annotated resources and enforce their TTL (default)
    ttl-operator crd   print the TTLResource CustomResourceDefinition as YAML
"""
import argparse
import logging
import sys
from typing import List, Optional

import yaml
from kubernetes import client, config as k8s_config

from .config import Settings
from .controller import Controller
from .discovery import DiscoveryReconciler
from .kinds import build_target_kinds
from .kube_store import KubernetesStore
from .manifest_templates import ttlresource_crd_template
from .resolver import OwnerKindResolver
from .tracking import TrackingReconciler

logger = logging.getLogger('ttl_lib')


def init_kubernetes() -> client.ApiClient:
    """Load cluster credentials and return an API client."""
    # Try in-cluster config first, fall back to kubeconfig
    try:
        k8s_config.load_incluster_config()
        logger.info('Loaded in-cluster Kubernetes config')
    except k8s_config.ConfigException:
        k8s_config.load_kube_config()
        logger.info('Loaded kubeconfig from default location')
    return client.ApiClient()


def build_controller(settings: Settings, api_client: client.ApiClient) -> Controller:
    table = build_target_kinds(
        client.CoreV1Api(api_client),
        client.AppsV1Api(api_client),
        client.BatchV1Api(api_client),
    )
    store = KubernetesStore(
        settings,
        client.CustomObjectsApi(api_client),
        api_client,
        table,
    )
    tracking = TrackingReconciler(store, OwnerKindResolver(store), settings)
    discovery = DiscoveryReconciler(store, tracking, settings)
    return Controller(discovery, store, settings)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog='ttl-operator', description=__doc__,
                                     formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument('command', nargs='?', default='run', choices=['run', 'crd'])
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    setup_logging(settings.log_level)

    if args.command == 'crd':
        yaml.safe_dump(ttlresource_crd_template(settings), sys.stdout, sort_keys=False)
        return 0

    try:
        controller = build_controller(settings, init_kubernetes())
    except ValueError as e:
        logger.error('Invalid configuration: %s', e)
        return 2
    except k8s_config.ConfigException as e:
        logger.error('Failed to initialize Kubernetes client: %s', e)
        return 1

    scope = settings.namespace or 'all namespaces'
    logger.info('Watching %s in %s', ', '.join(settings.target_kinds), scope)
    controller.run()
    return 0


if __name__ == '__main__':
    sys.exit(main())
