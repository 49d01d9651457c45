"""Call recording and scripted failures shared by the mock adapters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class RecordedCall:
    """A recorded adapter call for test assertions."""

    method: str
    args: tuple[Any, ...] = ()


class Scripted:
    """Mixin recording calls and raising scripted failures.

    ``fail_on`` maps ``"method"`` or ``"method:target"`` (target being the
    first string argument) to the exception to raise. A plain string becomes a
    ``RuntimeError``.
    """

    calls: list[RecordedCall]
    fail_on: dict[str, BaseException | str]

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append(RecordedCall(method, args))
        error = None
        if args and isinstance(args[0], str):
            error = self.fail_on.get(f"{method}:{args[0]}")
        if error is None:
            error = self.fail_on.get(method)
        if error is None:
            return
        raise error if isinstance(error, BaseException) else RuntimeError(error)

    def called(self, method: str) -> list[RecordedCall]:
        """Recorded calls of ``method``, in order."""
        return [c for c in self.calls if c.method == method]
