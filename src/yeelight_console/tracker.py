"""Correlation of outgoing requests with their responses."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .codec import Response
from .errors import Disconnected

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    id: int
    method: str
    future: asyncio.Future


class RequestTracker:
    """
    Map of outstanding correlation ids to their completion futures.

    Responses are matched strictly by id since the bulb does not guarantee
    answering in send order. All mutation happens on the event loop thread,
    and no method awaits between looking up and updating the map.
    """

    def __init__(self) -> None:
        self._pending: dict[int, PendingRequest] = {}
        self._error: Optional[Exception] = None

    @property
    def closed(self) -> bool:
        """True once :meth:`fail_all` has run."""
        return self._error is not None

    def pending_count(self) -> int:
        return len(self._pending)

    def register(
        self,
        request_id: int,
        method: str,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> asyncio.Future:
        """
        Register a request and return the future its response will complete.

        Args:
            request_id: Correlation id, unique among pending requests
            method: Wire method name, kept for diagnostics
            loop: Event loop owning the future (defaults to the running loop)

        Raises:
            Disconnected: if the tracker has already been failed
            ValueError: if ``request_id`` is already pending
        """
        if self._error is not None:
            raise Disconnected(f"cannot send {method}: connection is closed")
        if request_id in self._pending:
            raise ValueError(f"request id {request_id} is already pending")

        loop = loop or asyncio.get_running_loop()
        future = loop.create_future()
        self._pending[request_id] = PendingRequest(request_id, method, future)
        return future

    def resolve(self, request_id: int, response: Response) -> bool:
        """Complete the request waiting on ``request_id``.

        Returns False, without raising, for ids that are not pending.
        """
        entry = self._pending.pop(request_id, None)
        if entry is None:
            logger.debug("Dropping response for unknown request id %s", request_id)
            return False
        if not entry.future.done():
            entry.future.set_result(response)
        return True

    def discard(self, request_id: int) -> None:
        """Forget an abandoned request so a late response is dropped."""
        entry = self._pending.pop(request_id, None)
        if entry is not None and not entry.future.done():
            entry.future.cancel()

    def fail_all(self, error: Exception) -> int:
        """Fail every pending request with ``error`` and refuse new ones.

        Returns:
            Number of requests failed; 0 on repeated calls
        """
        if self._error is not None:
            return 0
        self._error = error

        pending, self._pending = self._pending, {}
        for entry in pending.values():
            if not entry.future.done():
                entry.future.set_exception(error)
        if pending:
            logger.debug("Failed %d pending request(s): %s", len(pending), error)
        return len(pending)
