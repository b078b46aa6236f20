"""Core models, configuration and the per-agent decision loop."""
