from .runtime import RuntimeDeps
from .session import Session
from .settings import AppSettings

__all__ = ["AppSettings", "RuntimeDeps", "Session"]
