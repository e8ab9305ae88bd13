"""recrate - canonical music entity resolution and enrichment orchestration."""

__version__ = "0.1.0"
