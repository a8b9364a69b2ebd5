"""Session registry configuration (env names and defaults)."""

from __future__ import annotations

ENV_SESSION_TIMEOUT_S = "SESSION_TIMEOUT_S"
ENV_SESSION_SWEEP_INTERVAL_S = "SESSION_SWEEP_INTERVAL_S"

DEFAULT_SESSION_TIMEOUT_S = 30 * 60.0
DEFAULT_SESSION_SWEEP_INTERVAL_S = 5 * 60.0

SESSION_ID_PREFIX = "session"

__all__ = [
    "ENV_SESSION_TIMEOUT_S",
    "ENV_SESSION_SWEEP_INTERVAL_S",
    "DEFAULT_SESSION_TIMEOUT_S",
    "DEFAULT_SESSION_SWEEP_INTERVAL_S",
    "SESSION_ID_PREFIX",
]
