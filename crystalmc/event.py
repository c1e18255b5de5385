"""Observer interface of the provisioning pipeline and the events it emits. Every
component that reports something accepts an optional `Watcher`, events are plain
objects and watchers dispatch on their type.
"""

from typing import Optional, Dict, Callable, Any


class Watcher:
    """Base class for a watcher of the provisioning and launch process.
    """

    def handle(self, event: Any) -> None:
        """Called when the watcher can handle the given event. Default implementation
        does nothing.
        """


class WatcherGroup(Watcher):
    """A watcher that forwards every event to the watchers it contains.
    """

    def __init__(self) -> None:
        self.watchers = set()

    def add(self, watcher: Watcher) -> None:
        self.watchers.add(watcher)

    def remove(self, watcher: Watcher) -> None:
        self.watchers.remove(watcher)

    def handle(self, event: Any) -> None:
        for watcher in self.watchers:
            watcher.handle(event)


class SimpleWatcher(Watcher):
    """A watcher that calls the handler registered for the exact type of the event.
    """

    def __init__(self, handlers: Dict[type, Callable[[Any], None]]) -> None:
        self.handlers = handlers

    def handle(self, event: Any) -> None:
        handler = self.handlers.get(type(event))
        if handler is not None:
            handler(event)


class ProgressEvent:
    """Progress of a long running step. The data names the step, `download` for the
    cumulative bytes of the download orchestrator, `assets` for the asset index
    validation and `extract` for the extraction backlog.
    """
    __slots__ = "data", "value", "total"
    def __init__(self, data: str, value: int, total: int) -> None:
        self.data = data
        self.value = value
        self.total = total

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 100
        return int(self.value / self.total * 100)

    def __repr__(self) -> str:
        return f"<ProgressEvent {self.data} {self.value}/{self.total}>"

class CompleteEvent:
    """A step has completed, `download` when all download queues have been processed and
    `java` with the path of the provisioned executable as value.
    """
    __slots__ = "data", "value"
    def __init__(self, data: str, value: Optional[Any] = None) -> None:
        self.data = data
        self.value = value

    def __repr__(self) -> str:
        return f"<CompleteEvent {self.data}>"

class ErrorEvent:
    __slots__ = "data", "error"
    def __init__(self, data: str, error: Exception) -> None:
        self.data = data
        self.error = error

    def __repr__(self) -> str:
        return f"<ErrorEvent {self.data}: {self.error}>"

class ValidateEvent:
    """A validation phase has finished: `version`, `assets`, `libraries` or `files`.
    """
    __slots__ = "phase",
    def __init__(self, phase: str) -> None:
        self.phase = phase

class StateEvent:
    """Transition of the launch state machine.
    """
    __slots__ = "previous", "state"
    def __init__(self, previous: str, state: str) -> None:
        self.previous = previous
        self.state = state

    def __repr__(self) -> str:
        return f"<StateEvent {self.previous} -> {self.state}>"

class ProcessOutputEvent:
    __slots__ = "line",
    def __init__(self, line: str) -> None:
        self.line = line
