"""Domain layer: models, repository contracts and settlement services."""
