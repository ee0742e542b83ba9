"""Git mirror and working-clone management, sync planning and sync event records."""

__version__ = "0.1.0"