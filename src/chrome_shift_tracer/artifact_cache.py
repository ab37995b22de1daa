#!/usr/bin/env python3
"""
Computed-Artifact Cache - per-run memoization of derived values.

The first caller for a `(kind, fingerprint)` key runs the computation; every
concurrent or later caller awaits the same future. Failures are cached like
values so a key is computed at most once per run. A cancelled computation is
evicted so a later caller can start over.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable, Tuple, Union

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, Hashable]
ComputeFn = Callable[[], Union[Any, Awaitable[Any]]]


class ComputedArtifactCache:
    """One instance per run; never shared between runs."""

    def __init__(self) -> None:
        self._entries: Dict[CacheKey, "asyncio.Future[Any]"] = {}
        self._lock = asyncio.Lock()
        self.compute_count = 0

    async def get_or_compute(self, kind: str, fingerprint: Hashable, compute_fn: ComputeFn) -> Any:
        """
        Return the cached value for `(kind, fingerprint)`, computing it with
        `compute_fn` (sync or async) if no caller has done so yet.

        Raises:
            Exception: Whatever `compute_fn` raised, for the first and every later caller.
        """
        key = (kind, fingerprint)
        async with self._lock:
            future = self._entries.get(key)
            is_owner = future is None
            if future is None:
                future = asyncio.get_running_loop().create_future()
                self._entries[key] = future

        if not is_owner:
            # Shielded so one waiter being cancelled does not cancel the shared computation.
            return await asyncio.shield(future)

        self.compute_count += 1
        logger.debug("Computing %s for %s", kind, fingerprint)
        try:
            value = compute_fn()
            if inspect.isawaitable(value):
                value = await value
        except asyncio.CancelledError:
            if self._entries.get(key) is future:
                del self._entries[key]
            future.cancel()
            raise
        except Exception as e:
            # clear() may have cancelled the entry while it was computing.
            if not future.done():
                future.set_exception(e)
                # Mark retrieved; the owner re-raises below.
                future.exception()
            raise
        if not future.done():
            future.set_result(value)
        return value

    def clear(self) -> None:
        for future in self._entries.values():
            if not future.done():
                future.cancel()
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
