"""Command implementations for the stubcache CLI."""
