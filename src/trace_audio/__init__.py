"""Audio processing for the Trace voice recorder."""

__version__ = "0.1.0"
