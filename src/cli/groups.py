"""Shared help-panel groups for the stubcache CLI."""

from __future__ import annotations

from cyclopts import Group

session_group = Group(
    "Session",
    help="Logging and configuration file options.",
    sort_key=0,
)

environment_group = Group(
    "Environment",
    help="Interpreter whose binary modules get stubs.",
    sort_key=1,
)

cache_group = Group(
    "Cache",
    help="Stub cache, bundle and policy cache locations.",
    sort_key=2,
)

generator_group = Group(
    "Generator",
    help="External stub generator settings.",
    sort_key=3,
)

__all__ = [
    "cache_group",
    "environment_group",
    "generator_group",
    "session_group",
]
