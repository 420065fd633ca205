"""Domain services: providers, telemetry, scoring, routing and persistence."""
