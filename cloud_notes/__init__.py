"""Notes client bound to a managed backend (auth, data API, object storage)."""

__version__ = "0.1.0"
