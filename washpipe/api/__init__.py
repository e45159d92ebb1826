"""HTTP API for the pipeline."""
