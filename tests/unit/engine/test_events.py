"""Unit tests for event dataclasses and EventBus dispatch."""

from __future__ import annotations

import dataclasses
import logging
import time

import pytest

from colorwall.engine.events import (
    Event,
    PipelineComplete,
    PipelineFailed,
    PipelineStart,
    ProjectorFailed,
    StageComplete,
    StageStart,
)
from colorwall.engine.observers import EventBus, Observer

# ---------------------------------------------------------------------------
# Test helpers
# ---------------------------------------------------------------------------


class RecordingObserver:
    """Observer that records every received event in order."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    def on_event(self, event: Event) -> None:
        self.events.append(event)


class ExplodingObserver:
    def on_event(self, event: Event) -> None:
        raise RuntimeError("observer bug")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


def test_events_are_frozen() -> None:
    event = StageStart(stage_name="RegionStage", stage_index=2)
    with pytest.raises(dataclasses.FrozenInstanceError):
        event.stage_index = 3  # type: ignore[misc]


def test_timestamp_is_populated() -> None:
    before = time.time()
    event = PipelineStart(run_id="r")
    assert before <= event.timestamp <= time.time()


def test_context_is_excluded_from_equality() -> None:
    a = StageComplete(timestamp=1.0, stage_name="S", context=object())
    b = StageComplete(timestamp=1.0, stage_name="S", context=object())
    assert a == b


def test_projector_failed_defaults() -> None:
    event = ProjectorFailed(stage_name="InversionStage", message="flat")
    assert event.projector is None
    assert event.channel is None


def test_all_events_share_base() -> None:
    for cls in (
        PipelineStart,
        PipelineComplete,
        PipelineFailed,
        StageStart,
        StageComplete,
        ProjectorFailed,
    ):
        assert issubclass(cls, Event)


# ---------------------------------------------------------------------------
# EventBus
# ---------------------------------------------------------------------------


def test_observer_protocol() -> None:
    assert isinstance(RecordingObserver(), Observer)


def test_subscription_by_exact_type() -> None:
    bus = EventBus()
    observer = RecordingObserver()
    bus.subscribe(StageStart, observer)
    bus.emit(StageStart(stage_name="A"))
    bus.emit(StageComplete(stage_name="A"))
    assert [type(e) for e in observer.events] == [StageStart]


def test_base_subscription_receives_everything() -> None:
    bus = EventBus()
    observer = RecordingObserver()
    bus.subscribe(Event, observer)
    bus.emit(PipelineStart(run_id="r"))
    bus.emit(ProjectorFailed(stage_name="S"))
    assert len(observer.events) == 2


def test_double_subscription_delivers_once() -> None:
    bus = EventBus()
    observer = RecordingObserver()
    bus.subscribe(Event, observer)
    bus.subscribe(StageStart, observer)
    bus.emit(StageStart(stage_name="A"))
    assert len(observer.events) == 1


def test_exact_type_subscribers_called_first() -> None:
    bus = EventBus()
    order: list[str] = []

    class Named:
        def __init__(self, name: str) -> None:
            self.name = name

        def on_event(self, event: Event) -> None:
            order.append(self.name)

    bus.subscribe(Event, Named("base"))
    bus.subscribe(StageStart, Named("exact"))
    bus.emit(StageStart())
    assert order == ["exact", "base"]


def test_unsubscribe() -> None:
    bus = EventBus()
    observer = RecordingObserver()
    bus.subscribe(Event, observer)
    bus.unsubscribe(Event, observer)
    bus.unsubscribe(StageStart, observer)
    bus.emit(StageStart())
    assert observer.events == []


def test_failing_observer_does_not_stop_delivery(caplog: pytest.LogCaptureFixture) -> None:
    bus = EventBus()
    observer = RecordingObserver()
    bus.subscribe(Event, ExplodingObserver())
    bus.subscribe(Event, observer)
    with caplog.at_level(logging.WARNING, logger="colorwall.engine.observers"):
        bus.emit(PipelineFailed(run_id="r", error="boom"))
    assert len(observer.events) == 1
    assert "continuing delivery" in caplog.text
