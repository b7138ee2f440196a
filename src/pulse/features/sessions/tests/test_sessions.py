from __future__ import annotations

import simpy

from pulse.features.events.schema import EventType
from pulse.features.sessions.service import (
    EndReason,
    InactivityPolicy,
    Session,
    SessionsConfig,
    SessionStateMachine,
    SessionStatus,
)

# ----------------------------
# Stubs
# ----------------------------


class DummyEvents:
    def __init__(self) -> None:
        self.rows: list[tuple[float, EventType]] = []
        self.env: simpy.Environment | None = None

    def emit(self, event_type: EventType) -> None:
        self.rows.append((float(self.env.now) if self.env else 0.0, event_type))

    @property
    def types(self) -> list[EventType]:
        return [t for _, t in self.rows]


class DummyIds:
    def __init__(self) -> None:
        self._i = 0

    def new_session_id(self) -> str:
        self._i += 1
        return f"sess_{self._i:04d}"


def make_machine(
    timeout_ms: int = 60_000, policy: InactivityPolicy = InactivityPolicy.END_SESSION
) -> tuple[simpy.Environment, SessionStateMachine, DummyEvents]:
    env = simpy.Environment()
    events = DummyEvents()
    events.env = env
    session = Session(session_id="sess_0000", user_id="u1", page_url="https://example.com/")
    machine = SessionStateMachine(
        env=env,
        session=session,
        ids=DummyIds(),
        cfg=SessionsConfig(session_timeout_ms=timeout_ms, inactivity_policy=policy),
        events=events,
    )
    return env, machine, events


# ----------------------------
# Tests
# ----------------------------


def test_start_emits_session_start_and_arms_timer():
    env, machine, events = make_machine()
    machine.start()

    assert events.types == [EventType.SESSION_START]
    assert machine.status is SessionStatus.ACTIVE
    assert machine.inactivity_timer_pending is True


def test_inactivity_timeout_ends_session_at_boundary():
    env, machine, events = make_machine(timeout_ms=60_000)
    machine.start()
    env.run(until=120)

    assert events.rows[-1] == (60.0, EventType.SESSION_END)
    assert machine.status is SessionStatus.ENDED
    assert machine.session.end_reason is EndReason.INACTIVITY


def test_activity_resets_inactivity_timer():
    env, machine, events = make_machine(timeout_ms=60_000)
    machine.start()
    env.run(until=50)
    machine.touch()
    env.run(until=100)

    assert EventType.SESSION_END not in events.types

    env.run(until=200)
    assert events.rows[-1] == (110.0, EventType.SESSION_END)


def test_end_is_idempotent():
    env, machine, events = make_machine()
    machine.start()

    assert machine.end(EndReason.HIDDEN) is True
    assert machine.end(EndReason.HIDDEN) is False
    assert machine.end(EndReason.INACTIVITY) is False

    assert events.types.count(EventType.SESSION_END) == 1
    assert machine.inactivity_timer_pending is False


def test_resume_after_inactivity_rotates_session_id():
    env, machine, events = make_machine(timeout_ms=60_000)
    machine.start()
    original = machine.session.session_id
    env.run(until=61)

    assert machine.touch() is True

    assert machine.session.session_id != original
    assert machine.status is SessionStatus.ACTIVE
    assert events.types == [EventType.SESSION_START, EventType.SESSION_END, EventType.SESSION_START]
    assert machine.inactivity_timer_pending is True


def test_touch_while_active_does_not_emit():
    env, machine, events = make_machine()
    machine.start()
    assert machine.touch() is False
    assert events.types == [EventType.SESSION_START]


def test_resume_after_hide():
    env, machine, events = make_machine()
    machine.start()
    machine.end(EndReason.HIDDEN)

    assert machine.touch() is True
    assert events.types[-1] is EventType.SESSION_START


def test_no_resume_after_unload():
    env, machine, events = make_machine()
    machine.start()
    machine.end(EndReason.UNLOAD)

    assert machine.touch() is False
    assert machine.is_unloaded is True
    assert events.types == [EventType.SESSION_START, EventType.SESSION_END]
    assert machine.inactivity_timer_pending is False


def test_unload_after_inactivity_blocks_resume_without_second_end():
    env, machine, events = make_machine(timeout_ms=60_000)
    machine.start()
    env.run(until=61)

    assert machine.end(EndReason.UNLOAD) is False
    assert machine.touch() is False
    assert events.types.count(EventType.SESSION_END) == 1


def test_mark_inactive_policy_keeps_session():
    env, machine, events = make_machine(timeout_ms=60_000, policy=InactivityPolicy.MARK_INACTIVE)
    machine.start()
    original = machine.session.session_id
    env.run(until=61)

    assert machine.status is SessionStatus.INACTIVE
    assert events.types == [EventType.SESSION_START]

    assert machine.touch() is False
    assert machine.status is SessionStatus.ACTIVE
    assert machine.session.session_id == original


def test_mark_inactive_policy_still_ends_on_hide():
    env, machine, events = make_machine(timeout_ms=60_000, policy=InactivityPolicy.MARK_INACTIVE)
    machine.start()
    env.run(until=61)

    assert machine.end(EndReason.HIDDEN) is True
    assert events.types == [EventType.SESSION_START, EventType.SESSION_END]


def test_navigate_returns_previous_url():
    env, machine, events = make_machine()
    assert machine.navigate("https://example.com/pricing") == "https://example.com/"
    assert machine.session.page_url == "https://example.com/pricing"
