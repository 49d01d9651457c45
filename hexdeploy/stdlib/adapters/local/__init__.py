"""Local (in-process) adapters."""

from .local_observer_manager import LocalObserverManager

__all__ = ["LocalObserverManager"]
