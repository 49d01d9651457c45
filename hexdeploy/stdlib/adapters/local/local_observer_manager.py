"""Local Observer Manager - in-process fan-out of engine events.

Observers are fault-isolated: a handler that raises or times out is logged
and never affects the run.
"""

from __future__ import annotations

import asyncio
import contextvars
import inspect
import uuid
from typing import TYPE_CHECKING

from hexdeploy.kernel.logging import get_logger
from hexdeploy.kernel.ports.observer_manager import ObserverFunc, ObserverManager

if TYPE_CHECKING:
    from hexdeploy.kernel.orchestration.events import Event

logger = get_logger(__name__)

DEFAULT_OBSERVER_TIMEOUT = 5.0


class LocalObserverManager(ObserverManager):
    """In-process observer manager.

    Parameters
    ----------
    observer_timeout : float
        Timeout in seconds for each handler call
    event_log_level : str
        Level at which every event's ``log_message()`` is logged; None disables
        the built-in logging observer

    Examples
    --------
    Example usage::

        observers = LocalObserverManager()
        observers.register(lambda event: print(event.log_message()))
        executor = StageExecutor(observer_manager=observers)
    """

    def __init__(
        self,
        observer_timeout: float = DEFAULT_OBSERVER_TIMEOUT,
        event_log_level: str | None = "INFO",
    ) -> None:
        self._timeout = observer_timeout
        self._event_log_level = event_log_level
        self._handlers: dict[str, ObserverFunc] = {}

    def register(self, handler: ObserverFunc, observer_id: str | None = None) -> str:
        """Register a sync or async handler; returns its id."""
        if not callable(handler):
            raise TypeError(f"Observer must be callable, got {type(handler)}")
        handler_id = observer_id or str(uuid.uuid4())
        self._handlers[handler_id] = handler
        return handler_id

    def unregister(self, handler_id: str) -> bool:
        return self._handlers.pop(handler_id, None) is not None

    def __len__(self) -> int:
        return len(self._handlers)

    async def notify(self, event: Event) -> None:
        if self._event_log_level is not None:
            logger.log(self._event_log_level, event.log_message())
        if not self._handlers:
            return
        handlers = list(self._handlers.items())
        await asyncio.gather(*(self._call(hid, handler, event) for hid, handler in handlers))

    async def _call(self, handler_id: str, handler: ObserverFunc, event: Event) -> None:
        name = getattr(handler, "__name__", handler_id)
        try:
            async with asyncio.timeout(self._timeout):
                if inspect.iscoroutinefunction(handler):
                    await handler(event)
                else:
                    ctx = contextvars.copy_context()
                    loop = asyncio.get_running_loop()
                    await loop.run_in_executor(None, ctx.run, handler, event)
        except TimeoutError:
            logger.warning(
                "Observer {name} timed out on {event}", name=name, event=type(event).__name__
            )
        except Exception as e:
            logger.warning(
                "Observer {name} failed for {event}: {error}",
                name=name,
                event=type(event).__name__,
                error=e,
            )
