from __future__ import annotations

import simpy

from pulse.features.coalescing.service import Coalescer, RecurringTimer, Timer


def test_timer_fires_once_after_delay():
    env = simpy.Environment()
    fired: list[float] = []
    t = Timer(env, lambda: fired.append(env.now))

    t.start(1500)
    env.run(until=10)

    assert fired == [1.5]
    assert t.pending is False


def test_timer_restart_cancels_predecessor():
    env = simpy.Environment()
    fired: list[float] = []
    t = Timer(env, lambda: fired.append(env.now))

    t.start(1000)
    env.run(until=0.5)
    t.start(1000)
    env.run(until=10)

    assert fired == [1.5]


def test_timer_cancel():
    env = simpy.Environment()
    fired: list[float] = []
    t = Timer(env, lambda: fired.append(env.now))

    t.start(1000)
    env.run(until=0.2)
    t.cancel()
    env.run(until=10)

    assert fired == []


def test_timer_can_rearm_from_its_own_callback():
    env = simpy.Environment()
    fired: list[float] = []

    def cb() -> None:
        fired.append(env.now)
        if len(fired) < 3:
            t.start(1000)

    t = Timer(env, cb)
    t.start(1000)
    env.run(until=10)

    assert fired == [1.0, 2.0, 3.0]


def test_recurring_timer_fires_every_interval_until_stopped():
    env = simpy.Environment()
    fired: list[float] = []
    r = RecurringTimer(env, 10_000, lambda: fired.append(env.now))

    r.start()
    r.start()  # idempotent
    env.run(until=35)
    r.stop()
    env.run(until=100)

    assert fired == [10.0, 20.0, 30.0]
    assert r.running is False

    r.start()  # a stopped timer is never re-armed
    env.run(until=200)
    assert fired == [10.0, 20.0, 30.0]


def test_coalescer_emits_latest_sample_after_quiet_period():
    env = simpy.Environment()
    out: list[tuple[float, int]] = []
    c: Coalescer[int] = Coalescer(env, 250, lambda s: out.append((env.now, s)))

    def burst(env):
        for i in range(5):
            c.push(i)
            yield env.timeout(0.1)

    env.process(burst(env))
    env.run(until=5)

    # last push at t=0.4, quiet for 250ms
    assert len(out) == 1
    assert out[0][1] == 4
    assert abs(out[0][0] - 0.65) < 1e-9


def test_coalescer_separate_bursts_emit_separately():
    env = simpy.Environment()
    out: list[int] = []
    c: Coalescer[int] = Coalescer(env, 250, out.append)

    c.push(1)
    env.run(until=1)
    c.push(2)
    c.push(3)
    env.run(until=2)

    assert out == [1, 3]


def test_coalescer_flush_now_and_cancel():
    env = simpy.Environment()
    out: list[int] = []
    c: Coalescer[int] = Coalescer(env, 250, out.append)

    c.push(1)
    c.flush_now()
    assert out == [1]
    assert c.pending is False

    c.push(2)
    c.cancel()
    env.run(until=5)
    assert out == [1]
