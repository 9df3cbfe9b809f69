"""apibundle: bundle multi-file OpenAPI documents and map findings back to source."""

__version__ = "0.3.0"
