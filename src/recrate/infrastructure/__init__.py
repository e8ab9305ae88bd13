"""Infrastructure layer: persistence, external integrations and observability."""
