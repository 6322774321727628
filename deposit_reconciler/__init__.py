"""Settlement deposit reconciler."""

__version__ = "1.0.0"
