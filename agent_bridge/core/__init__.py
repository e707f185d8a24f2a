"""Turn orchestration, providers, permissions and persistence."""
