"""Single-assignment result cell.

A ``ResultCell`` is completed exactly once, either with a value or with an
exception, and awaited by one consumer. It replaces the ad-hoc futures a
callback-driven client would keep for ``connect()`` and ``receive()``.
"""

from __future__ import annotations

from typing import Generic, TypeVar

import anyio

T = TypeVar("T")


class ResultCell(Generic[T]):
    def __init__(self) -> None:
        self._event = anyio.Event()
        self._value: T | None = None
        self._exception: BaseException | None = None

    @property
    def done(self) -> bool:
        return self._event.is_set()

    @property
    def failed(self) -> bool:
        return self._exception is not None

    def set_result(self, value: T) -> None:
        """Complete the cell with a value.

        Raises:
            RuntimeError: If the cell was already completed.
        """
        self._check_pending()
        self._value = value
        self._event.set()

    def set_exception(self, exception: BaseException) -> None:
        """Complete the cell with an exception, re-raised to the waiter.

        Raises:
            RuntimeError: If the cell was already completed.
        """
        self._check_pending()
        self._exception = exception
        self._event.set()

    def result(self) -> T:
        """Return the value without waiting."""
        if not self.done:
            raise RuntimeError("Result is not available yet")
        if self._exception is not None:
            raise self._exception
        return self._value  # type: ignore[return-value]

    async def wait(self) -> T:
        await self._event.wait()
        return self.result()

    def _check_pending(self) -> None:
        if self.done:
            raise RuntimeError("Result cell already completed")
