"""gsio-ai: a streaming terminal chat client."""

__version__ = "0.3.0"
