"""Locate files shipped alongside the code."""
from __future__ import annotations

from pathlib import Path

STATIC_BUNDLE_DIRNAME = "webui"


def _base_path() -> Path:
    return Path(__file__).resolve().parent.parent


def resolve_path(*segments: str) -> Path:
    """Resolve path segments relative to the repository root."""
    return _base_path().joinpath(*segments)


def static_bundle_dir() -> Path:
    """Default directory holding the browser client bundle served by the relay."""
    return resolve_path(STATIC_BUNDLE_DIRNAME)
