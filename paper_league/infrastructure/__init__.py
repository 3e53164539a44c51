"""Infrastructure layer: database wiring, document store backends, triggers."""
