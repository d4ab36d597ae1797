"""Lifespan management with event-based architecture for multipart-downloader."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from typing import Any, Generic, TypeVar

from robyn import Robyn

from multipart_downloader.core.logger import LogIcon, logger
from multipart_downloader.core.settings import settings as st

T = TypeVar("T")

AsyncHandler = Callable[[], Coroutine[Any, Any, None]]


class State:
    """Resources created at startup, reachable by attribute or ``get``."""

    __slots__ = ("_resources",)

    def __init__(self) -> None:
        object.__setattr__(self, "_resources", {})

    def __getattr__(self, name: str) -> Any:
        try:
            return self._resources[name]
        except KeyError:
            raise AttributeError(f"State has no attribute '{name}'") from None

    def __setattr__(self, name: str, value: Any) -> None:
        self._resources[name] = value

    def __contains__(self, name: str) -> bool:
        return name in self._resources

    def __iter__(self):
        return iter(self._resources)

    def __repr__(self) -> str:
        return f"State({sorted(self._resources)})"

    def get(self, name: str, default: Any = None) -> Any:
        return self._resources.get(name, default)

    def pop(self, name: str, default: Any = None) -> Any:
        return self._resources.pop(name, default)

    def clear(self) -> None:
        self._resources.clear()


class BaseEvent(ABC, Generic[T]):
    """A resource opened at startup and released at shutdown."""

    name: str
    state: State

    @abstractmethod
    async def startup(self) -> T:
        ...

    async def shutdown(self, instance: T) -> None:  # noqa: B027
        """Optional cleanup. Override if cleanup is needed."""

    @classmethod
    def has_shutdown(cls) -> bool:
        return cls.shutdown is not BaseEvent.shutdown


class Lifespan:
    """Starts registered events in order and stops them in reverse.

    If an event fails to start, the events already running are stopped before
    the error propagates, so a half-initialised service never keeps a worker
    pool alive.
    """

    def __init__(self, app: Robyn) -> None:
        self._app = app
        self._event_classes: list[type[BaseEvent[Any]]] = []
        self._events: list[BaseEvent[Any]] = []
        self._state: State | None = None

    def register(self, event_cls: type[BaseEvent[Any]]) -> "Lifespan":
        """Register an event class. Returns self for chaining."""
        self._event_classes.append(event_cls)
        return self

    @property
    def state(self) -> State | None:
        return self._state

    @property
    def events(self) -> list[BaseEvent[Any]]:
        return self._events

    async def _start_event(self, event_cls: type[BaseEvent[Any]]) -> None:
        event = event_cls()
        event.state = self._state
        setattr(self._state, event.name, await event.startup())
        self._events.append(event)
        logger.info("Event ready", icon=LogIcon.SUCCESS, lifespan_event=event.name)

    async def _unwind(self) -> None:
        while self._events:
            event = self._events.pop()
            if event.has_shutdown() and event.name in self._state:
                await event.shutdown(self._state.pop(event.name))
                logger.info("Event stopped", icon=LogIcon.SUCCESS, lifespan_event=event.name)
        self._state.clear()

    async def _startup(self) -> None:
        logger.info("Starting application lifespan", icon=LogIcon.START, version=st.API_VERSION)
        self._state = State()
        try:
            for event_cls in self._event_classes:
                await self._start_event(event_cls)
        except BaseException:
            logger.error("Startup failed, stopping started events", icon=LogIcon.ERROR, started=len(self._events))
            await self._unwind()
            raise
        self._app.inject_global(state=self._state)

    async def _shutdown(self) -> None:
        if self._state is None:
            logger.info("No state to cleanup", icon=LogIcon.WARNING)
            return
        await self._unwind()
        logger.info("Cleanup complete", icon=LogIcon.COMPLETE)

    @property
    def startup(self) -> AsyncHandler:
        return self._startup

    @property
    def shutdown(self) -> AsyncHandler:
        return self._shutdown


def create_lifespan(app: Robyn) -> Lifespan:
    """Create lifespan manager for event registration."""
    return Lifespan(app)
