"""Lead intake, enrichment and routing service."""

__version__ = "1.0.0"
