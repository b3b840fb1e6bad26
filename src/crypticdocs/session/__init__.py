"""Session credential acquisition."""

from .models import SessionCredentials
from .provider import SessionProvider, is_plausible
from .strategies import (
    InterceptedRequestStrategy,
    PageStructureStrategy,
    PersistedStorageStrategy,
    ScriptStateStrategy,
    SessionStrategy,
)

__all__ = [
    "InterceptedRequestStrategy",
    "PageStructureStrategy",
    "PersistedStorageStrategy",
    "ScriptStateStrategy",
    "SessionCredentials",
    "SessionProvider",
    "SessionStrategy",
    "is_plausible",
]
