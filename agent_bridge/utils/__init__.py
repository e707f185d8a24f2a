"""Shared helpers with no knowledge of agent sessions."""
