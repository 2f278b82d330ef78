"""circlesync - federated item and share synchronization between instances."""

__version__ = "0.1.0"
