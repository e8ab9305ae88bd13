"""Application layer: services, use cases and job queue."""
