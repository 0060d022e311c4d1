"""TTL enforcement for annotated Kubernetes resources."""

__version__ = '0.1.0'
