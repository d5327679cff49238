"""Reddit content collector: OAuth2 thread retrieval and normalization."""

__version__ = "0.1.0"
