"""Secrets and authentication configuration (env names only)."""

from __future__ import annotations

ENV_GEMINI_API_KEY = "GEMINI_API_KEY"
ENV_RELAY_API_KEY = "RELAY_API_KEY"

__all__ = ["ENV_GEMINI_API_KEY", "ENV_RELAY_API_KEY"]
