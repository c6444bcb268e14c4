"""Carbon market lending backend."""

__version__ = "0.1.0"
