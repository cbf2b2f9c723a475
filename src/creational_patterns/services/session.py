"""
Session objects (Singleton pattern, two flavours).

**Variant A: SharedSession.** The classic singleton: the class itself
guarantees one instance per process. The only way in is
`SharedSession.shared()`; calling `SharedSession()` raises TypeError.
First access creates the instance under a lock with double-checked
locking, so any number of threads racing on startup still see exactly one
construction and the same object.

**Variant B: AppSession.** An ordinary class anyone can construct. One
instance is still shared app-wide, but because a single dependencies root
(`services.factory.AppDependencies`) builds it and passes the reference
around. You keep "one instance" and "created once at startup", and gain
the ability to build a fresh session in every test. What you give up is
"reachable from anywhere without a reference", which is the point.

Neither variant can be reset: once initialized, the instance lives until the
process exits. Thread-safety of the session's own methods is the session's
business; `AppSession.touch()` guards its counter itself.
"""

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

from creational_patterns.config import CreationalSettings

logger = logging.getLogger(__name__)

_CONSTRUCTION_TOKEN = object()


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ── Variant A: classic singleton ─────────────────────────────────────


class SharedSession:
    """Process-wide session reachable from anywhere."""

    _instance: ClassVar["SharedSession | None"] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, *, _token: object = None) -> None:
        if _token is not _CONSTRUCTION_TOKEN:
            raise TypeError("SharedSession cannot be constructed directly; use SharedSession.shared()")
        self.session_id = uuid.uuid4().hex
        self.started_at = _now()

    @classmethod
    def shared(cls) -> "SharedSession":
        # Fast path: no lock once the instance exists.
        instance = cls._instance
        if instance is not None:
            return instance
        with cls._lock:
            if cls._instance is None:
                cls._instance = cls(_token=_CONSTRUCTION_TOKEN)
                logger.info("Created shared session %s", cls._instance.session_id)
            return cls._instance


# ── Variant B: injected session ──────────────────────────────────────


class SessionDependencies(BaseModel):
    """Everything an AppSession needs, handed in by the dependencies root."""

    model_config = ConfigDict(frozen=True)

    settings: CreationalSettings
    user_agent: str = Field(default="creational-patterns")


class AppSession:
    """A plain session object. Share it by passing the reference around."""

    def __init__(self, dependencies: SessionDependencies) -> None:
        self.dependencies = dependencies
        self.session_id = uuid.uuid4().hex
        self.started_at = _now()
        self._touches = 0
        self._touch_lock = threading.Lock()

    def touch(self) -> int:
        """Record one use of the session and return the running count."""
        with self._touch_lock:
            self._touches += 1
            return self._touches

    @property
    def touches(self) -> int:
        return self._touches
