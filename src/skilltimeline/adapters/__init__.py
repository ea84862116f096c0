"""Adapters binding the timeline domain to external services."""
