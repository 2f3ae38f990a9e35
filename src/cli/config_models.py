"""Typed configuration models for stubcache."""

from __future__ import annotations

from serde_msgspec import StructBaseStrict


class RootConfigSpec(StructBaseStrict, frozen=True):
    """Root configuration values from ``stubcache.toml`` or ``[tool.stubcache]``."""

    interpreter: str | None = None
    base_interpreter: str | None = None
    generator_script: str | None = None
    cache_root: str | None = None
    cache_dir: str | None = None
    bundle_dir: str | None = None
    version_rules: str | None = None
    generation_timeout_s: float | None = None
    policy_cache_dir: str | None = None


__all__ = ["RootConfigSpec"]
