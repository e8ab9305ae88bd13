"""Domain layer: entities, DTOs, ports, value objects and exceptions."""
