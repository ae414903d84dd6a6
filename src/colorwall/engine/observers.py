"""Observer protocol and EventBus for typed synchronous event dispatch.

Stages only compute and drive the wall; observers react to lifecycle events
(progress output, timing, export, snapshots) without touching calibration
state.

Dispatch rules:
- Synchronous: the pipeline waits for every ``on_event`` call, so observers
  see events in emission order.
- Typed: observers subscribe to an ``Event`` subclass, or to ``Event`` itself
  to receive everything.
- Fault-tolerant: an observer that raises is logged and skipped; the run
  and the remaining observers are unaffected.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Protocol, runtime_checkable

from colorwall.engine.events import Event

logger = logging.getLogger(__name__)


@runtime_checkable
class Observer(Protocol):
    """Structural protocol for pipeline event observers.

    Example::

        class PrintObserver:
            def on_event(self, event: Event) -> None:
                print(type(event).__name__)

        bus = EventBus()
        bus.subscribe(StageComplete, PrintObserver())
    """

    def on_event(self, event: Event) -> None:
        """Receive one dispatched event. Must not mutate pipeline state."""
        ...


class EventBus:
    """Typed, synchronous event dispatcher.

    An emitted event reaches observers subscribed to its exact type first,
    then observers subscribed to each ancestor ``Event`` type in MRO order.
    Within one type, observers are called in subscription order. An observer
    subscribed to several matching types receives the event once.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[type[Event], list[Observer]] = defaultdict(list)

    def subscribe(self, event_type: type[Event], observer: Observer) -> None:
        """Register *observer* for *event_type* and its subclasses."""
        self._subscriptions[event_type].append(observer)

    def unsubscribe(self, event_type: type[Event], observer: Observer) -> None:
        """Remove *observer* from *event_type*; unknown pairs are ignored."""
        observers = self._subscriptions.get(event_type)
        if observers and observer in observers:
            observers.remove(observer)

    def _matching(self, event: Event) -> list[Observer]:
        matched: list[Observer] = []
        seen: set[int] = set()
        for ancestor in type(event).__mro__:
            if not (isinstance(ancestor, type) and issubclass(ancestor, Event)):
                continue
            for obs in self._subscriptions.get(ancestor, ()):
                if id(obs) not in seen:
                    seen.add(id(obs))
                    matched.append(obs)
        return matched

    def emit(self, event: Event) -> None:
        """Deliver *event* to every matching observer.

        Exceptions raised by an observer are logged with a traceback and
        delivery continues.
        """
        for obs in self._matching(event):
            try:
                obs.on_event(event)
            except Exception:
                logger.warning(
                    "Observer %r failed on %s; continuing delivery",
                    obs,
                    type(event).__name__,
                    exc_info=True,
                )


__all__ = ["EventBus", "Observer"]
