"""Bootstrap a self-hosting Cluster-API management cluster."""

__version__ = "0.1.0"
