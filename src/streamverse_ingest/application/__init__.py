"""Application layer: job registry, orchestration, and services."""
