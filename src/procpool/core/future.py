"""One-shot handle linking a command to its eventual result."""

# Standard library imports
from typing import Callable, Optional

# Local imports
from ..exceptions import AlreadyResolvedError, ScheduleError
from .result import ExecutionResult


class Future:
    """Pending-then-resolved slot for an :class:`ExecutionResult`.

    The pool runs on the caller's thread, so nothing resolves a pending
    future in the background. Instead the owning pool hands every future a
    ``driver`` callback: when :meth:`get_result` is called on a pending
    future it invokes the driver, which advances the pool's multiplex loop
    until this future is resolved. Waiting on a result therefore pumps the
    whole pool, including sibling commands.
    """

    def __init__(self, driver: Optional[Callable[["Future"], None]] = None):
        self._result: Optional[ExecutionResult] = None
        self._driver = driver

    def set_result(self, result: ExecutionResult) -> None:
        """Resolve the future.

        Raises:
            AlreadyResolvedError: If the future was resolved before
            TypeError: If ``result`` is not an ExecutionResult
        """
        if self._result is not None:
            raise AlreadyResolvedError()
        if not isinstance(result, ExecutionResult):
            raise TypeError(
                f"Future result must be an ExecutionResult, got {type(result).__name__}"
            )
        self._result = result

    def has_result(self) -> bool:
        return self._result is not None

    def get_result(self) -> ExecutionResult:
        """Return the result, driving the owning pool if it is still pending.

        Raises:
            ScheduleError: If the future is pending and no pool can resolve it
        """
        if self._result is None:
            if self._driver is None:
                raise ScheduleError("Future is pending and not bound to a pool")
            self._driver(self)
            if self._result is None:
                raise ScheduleError("Pool finished without resolving this future")
        return self._result

    def __repr__(self) -> str:
        state = "resolved" if self._result is not None else "pending"
        return f"<Future {state}>"
