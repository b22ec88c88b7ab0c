"""Cancellable, deadline-bound consumption of remote listings.

Remote listings are async iterators that may page over the network. The
engine must either drain a listing completely or cancel it; a partially
consumed listing never feeds a diff.

CancellableStream enforces that contract:
- Pull-based: nothing is fetched until the consumer asks for the next item
- Deadline-bound: each pull waits at most for the time left on the deadline
- Closed on exit: ``async with`` closes the underlying iterator, releasing
  whatever the producer holds, including on errors and early exits
- Failures surface as SequenceError so no caller mistakes a half-read
  listing for a complete one
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from types import TracebackType
from typing import Generic, TypeVar

from .errors import SequenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellableStream(Generic[T]):
    """Wraps a remote listing with a deadline and guaranteed cleanup.

    Usage:
        async with CancellableStream(
            client.list_who_items(ap_id), timeout_seconds=60, description="who-items"
        ) as stream:
            async for item in stream:
                ...
    """

    def __init__(
        self,
        source: AsyncIterator[T],
        *,
        timeout_seconds: float,
        description: str,
    ) -> None:
        self._source = source
        self._description = description
        self._deadline = time.monotonic() + timeout_seconds
        self._timeout_seconds = timeout_seconds
        self._closed = False
        self._exhausted = False
        self.items_read = 0

    @property
    def exhausted(self) -> bool:
        """True once the producer signalled the end of the listing."""
        return self._exhausted

    def __aiter__(self) -> CancellableStream[T]:
        return self

    async def __anext__(self) -> T:
        if self._closed or self._exhausted:
            raise StopAsyncIteration

        remaining = self._deadline - time.monotonic()
        if remaining <= 0:
            await self.aclose()
            raise SequenceError(
                f"Listing {self._description} exceeded its deadline of "
                f"{self._timeout_seconds}s after {self.items_read} items"
            )

        try:
            item = await asyncio.wait_for(anext(self._source), timeout=remaining)
        except StopAsyncIteration:
            self._exhausted = True
            raise
        except TimeoutError as e:
            await self.aclose()
            raise SequenceError(
                f"Listing {self._description} exceeded its deadline of "
                f"{self._timeout_seconds}s after {self.items_read} items"
            ) from e
        except SequenceError:
            await self.aclose()
            raise
        except Exception as e:
            await self.aclose()
            raise SequenceError(
                f"Listing {self._description} failed after {self.items_read} items: {e}"
            ) from e

        self.items_read += 1
        return item

    async def aclose(self) -> None:
        """Cancel the listing and release the producer. Idempotent."""
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()
        if not self._exhausted:
            logger.debug(
                "Listing cancelled before exhaustion",
                extra={"listing": self._description, "items_read": self.items_read},
            )

    async def collect(self) -> list[T]:
        """Drain the listing completely and return every item."""
        return [item async for item in self]

    async def __aenter__(self) -> CancellableStream[T]:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
