"""channelhub: Channel / Identity relationship management."""

__version__ = "0.1.0"
