from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import simpy

from pulse.core.logging import get_logger
from pulse.features.coalescing.service import Timer
from pulse.features.events.schema import EventType, Utm

MIN_SESSION_TIMEOUT_MS = 30_000
DEFAULT_SESSION_TIMEOUT_MS = 15 * 60_000

# ----------------------------
# Models
# ----------------------------


class SessionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ENDED = "ended"


class EndReason(str, Enum):
    INACTIVITY = "inactivity"
    HIDDEN = "hidden"
    UNLOAD = "unload"


# a session ended for these reasons comes back on the next qualifying signal
RESUMABLE_END_REASONS = frozenset({EndReason.INACTIVITY, EndReason.HIDDEN})


class InactivityPolicy(str, Enum):
    """
    END_SESSION: the inactivity timeout ends the session (session_end emitted).
    MARK_INACTIVE: the timeout only flags reduced engagement; no event.
    """

    END_SESSION = "end_session"
    MARK_INACTIVE = "mark_inactive"


@dataclass
class Session:
    session_id: str
    user_id: str
    page_url: str
    utm: Utm | None = None
    status: SessionStatus = SessionStatus.ACTIVE
    end_reason: EndReason | None = None


@dataclass(frozen=True)
class SessionsConfig:
    session_timeout_ms: int = DEFAULT_SESSION_TIMEOUT_MS
    inactivity_policy: InactivityPolicy = InactivityPolicy.END_SESSION


# ----------------------------
# Protocols
# ----------------------------


class LifecycleSink(Protocol):
    def emit(self, event_type: EventType) -> None: ...


class SessionIdsLike(Protocol):
    def new_session_id(self) -> str: ...


# ----------------------------
# Service
# ----------------------------


class SessionStateMachine:
    """
    Active -> Ended on inactivity timeout, page hide or unload (idempotent).
    Active -> Inactive on timeout when the policy is MARK_INACTIVE.
    Ended  -> Active on a qualifying signal, unless the session ended on unload;
              the session id rotates and a fresh session_start is emitted.
    """

    def __init__(
        self,
        *,
        env: simpy.Environment,
        session: Session,
        ids: SessionIdsLike,
        cfg: SessionsConfig,
        events: LifecycleSink,
        logger: logging.Logger | None = None,
    ) -> None:
        self.env = env
        self.session = session
        self.ids = ids
        self.cfg = cfg
        self.events = events
        self._logger = logger or get_logger(__name__)
        self._inactivity = Timer(env, self._on_inactivity_timeout)

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    @property
    def is_ended(self) -> bool:
        return self.session.status is SessionStatus.ENDED

    @property
    def is_unloaded(self) -> bool:
        return self.is_ended and self.session.end_reason is EndReason.UNLOAD

    @property
    def inactivity_timer_pending(self) -> bool:
        return self._inactivity.pending

    def start(self) -> None:
        self.session.status = SessionStatus.ACTIVE
        self.session.end_reason = None
        self.events.emit(EventType.SESSION_START)
        self._arm()

    def touch(self) -> bool:
        """
        A qualifying signal (pointer move, key, scroll, click, visible again).
        Returns True when it started a new session.
        """
        if self.is_unloaded:
            return False

        resumed = False
        if self.is_ended:
            if self.session.end_reason not in RESUMABLE_END_REASONS:
                return False
            self.session.session_id = self.ids.new_session_id()
            self.session.status = SessionStatus.ACTIVE
            self.session.end_reason = None
            self._logger.info(
                "session resumed",
                extra={"session_id": self.session.session_id, "reason": "activity"},
            )
            self.events.emit(EventType.SESSION_START)
            resumed = True
        elif self.session.status is SessionStatus.INACTIVE:
            self.session.status = SessionStatus.ACTIVE

        self._arm()
        return resumed

    def end(self, reason: EndReason) -> bool:
        """Returns False when the session was already ended (no duplicate event)."""
        if self.is_ended:
            # unload outranks an earlier resumable end: nothing may revive it now
            if reason is EndReason.UNLOAD:
                self.session.end_reason = EndReason.UNLOAD
            return False

        self._inactivity.cancel()
        self.session.status = SessionStatus.ENDED
        self.session.end_reason = reason
        self._logger.info(
            "session ended",
            extra={"session_id": self.session.session_id, "reason": reason.value},
        )
        self.events.emit(EventType.SESSION_END)
        return True

    def navigate(self, new_url: str) -> str:
        """Moves the session to new_url and returns the previous url."""
        previous = self.session.page_url
        self.session.page_url = new_url
        return previous

    def stop(self) -> None:
        self._inactivity.cancel()

    def _arm(self) -> None:
        self._inactivity.start(self.cfg.session_timeout_ms)

    def _on_inactivity_timeout(self) -> None:
        if self.cfg.inactivity_policy is InactivityPolicy.MARK_INACTIVE:
            if self.session.status is SessionStatus.ACTIVE:
                self.session.status = SessionStatus.INACTIVE
            return
        self.end(EndReason.INACTIVITY)
