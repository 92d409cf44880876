from __future__ import annotations

import asyncio
import random

import pytest

from learning_agent.config import settings
from learning_agent.models import ALERT_TYPES, SessionConfig
from learning_agent.recording.alerts import (
    PLACEHOLDER_CONTENT,
    PLACEHOLDER_CORRECTIONS,
    AlertGenerator,
    RandomAlertSource,
)
from tests.conftest import ScriptedAlertSource, make_alert


def _session():
    return SessionConfig(title="Alerts").new_session()


def test_random_source_defaults_to_configured_probability() -> None:
    assert RandomAlertSource().probability == settings.alert_probability == 0.1


def test_random_source_never_fires_at_zero_probability() -> None:
    source = RandomAlertSource(probability=0.0, rng=random.Random(1))
    session = _session()

    results = asyncio.run(_collect(source, session, 200))

    assert results == [None] * 200


def test_random_source_alert_fields_stay_in_range() -> None:
    source = RandomAlertSource(probability=1.0, rng=random.Random(42))
    session = _session()

    alerts = asyncio.run(_collect(source, session, 300))

    assert all(alert is not None for alert in alerts)
    assert {a.type for a in alerts} == set(ALERT_TYPES)
    assert {a.severity for a in alerts} == {"low", "medium", "high"}
    assert all(0.7 <= a.confidence <= 1.0 for a in alerts)
    assert all(a.content in PLACEHOLDER_CONTENT for a in alerts)
    assert all(a.suggested_correction in PLACEHOLDER_CORRECTIONS for a in alerts)
    assert not any(a.notified for a in alerts)


def test_random_source_fires_roughly_at_its_probability() -> None:
    source = RandomAlertSource(probability=0.1, rng=random.Random(7))
    alerts = asyncio.run(_collect(source, _session(), 2000))

    fired = sum(1 for a in alerts if a is not None)
    assert 120 < fired < 280


def test_alert_rejects_confidence_outside_unit_interval() -> None:
    with pytest.raises(ValueError):
        make_alert(confidence=1.2)
    with pytest.raises(ValueError):
        make_alert(confidence=-0.1)


def test_generator_tick_forwards_alerts() -> None:
    received = []

    async def on_alert(alert):
        received.append(alert)

    alert = make_alert()
    generator = AlertGenerator(ScriptedAlertSource([alert]), _session(), on_alert, interval=10)

    async def scenario():
        first = await generator.tick()
        second = await generator.tick()
        return first, second

    first, second = asyncio.run(scenario())

    assert first is alert
    assert second is None
    assert received == [alert]


def test_generator_timer_runs_until_cancelled() -> None:
    source = ScriptedAlertSource()
    generator = AlertGenerator(source, _session(), _ignore, interval=0.01)

    async def scenario():
        generator.start()
        assert generator.running
        await asyncio.sleep(0.1)
        generator.cancel()
        calls = source.calls
        await asyncio.sleep(0.05)
        return calls

    calls_at_cancel = asyncio.run(scenario())

    assert calls_at_cancel >= 2
    assert source.calls == calls_at_cancel
    assert not generator.running


async def _ignore(alert) -> None:
    return None


async def _collect(source, session, n):
    return [await source.detect(session) for _ in range(n)]
