"""
Correlation tokens for discarding stale responses

There is no network-level cancellation: once a request is on the wire its
reply will arrive eventually. "Cancelling" an operation means making the token
it was issued with stale, so that the reply handler recognises it and returns
without touching state.

Two policies share the same interface:

- GenerationCounter: only the most recently issued token is live. Used by the
  interactive search, where a new query supersedes every earlier one.
- PendingTokens: every issued token stays live until it is consumed (its reply
  was handled) or cancelled (logout). Used for playlist refreshes and federated
  searches, where many requests are legitimately outstanding at once. The set
  can be awaited until it drains.

All methods must be called from the event loop thread.
"""

import asyncio
from typing import Any, Dict, Iterator, List, Optional, Tuple


class CorrelationTokens:
    """Base class: issue monotonically increasing tokens and check liveness"""

    def __init__(self):
        self._last_token = 0

    def _next_token(self) -> int:
        self._last_token += 1
        return self._last_token

    def issue(self) -> int:
        raise NotImplementedError

    def is_live(self, token: int) -> bool:
        raise NotImplementedError

    def cancel_all(self) -> None:
        raise NotImplementedError


class GenerationCounter(CorrelationTokens):
    """Last-issued-wins tokens"""

    def issue(self) -> int:
        return self._next_token()

    @property
    def current(self) -> int:
        return self._last_token

    def is_live(self, token: int) -> bool:
        return token == self._last_token

    def cancel_all(self) -> None:
        # Burning a token makes every previously issued one stale
        self._next_token()


class PendingTokens(CorrelationTokens):
    """
    Set of outstanding tokens, each optionally carrying a payload

    A token is live from issue() until consume()/pop() or cancel_all().
    """

    def __init__(self):
        super().__init__()
        self._pending: Dict[int, Any] = {}
        self._waiters: List[asyncio.Future] = []

    def issue(self, payload: Any = None) -> int:
        token = self._next_token()
        self._pending[token] = payload
        return token

    def is_live(self, token: int) -> bool:
        return token in self._pending

    def consume(self, token: int) -> bool:
        """
        Remove a token once its reply has been handled

        Returns:
            True if the token was still live, False if it had been cancelled
        """
        found, _ = self.take(token)
        return found

    def take(self, token: int) -> Tuple[bool, Any]:
        """Remove a token and return (was_live, payload)"""
        if token not in self._pending:
            return False, None
        payload = self._pending.pop(token)
        self._notify_if_empty()
        return True, payload

    def cancel_all(self) -> List[Any]:
        """Drop every outstanding token and return their payloads"""
        payloads = list(self._pending.values())
        self._pending.clear()
        self._notify_if_empty()
        return payloads

    def payloads(self) -> Iterator[Any]:
        return iter(list(self._pending.values()))

    async def wait_empty(self) -> None:
        """Wait until no token is outstanding"""
        if not self._pending:
            return
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        await waiter

    def _notify_if_empty(self) -> None:
        if self._pending:
            return
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    def __len__(self) -> int:
        return len(self._pending)

    def __bool__(self) -> bool:
        return bool(self._pending)

    def __contains__(self, token: Optional[int]) -> bool:
        return token in self._pending
