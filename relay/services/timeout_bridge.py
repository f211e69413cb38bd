"""Bridge between a webhook's hard reply deadline and slow completion calls.

A call that misses the deadline keeps running. Its result is parked in the
key-value store under the request fingerprint, and the platform's retry of
the same message (same sender, same literal text) picks it up.

This relies on the messaging platform retrying a request it got no useful
reply for. The bridge cannot enforce that.
"""

import asyncio
import hashlib
import json
from typing import Awaitable, Callable, Optional

from relay.logging_config import get_logger
from relay.services.errors import ProviderError
from relay.services.kv_store import KeyValueStore
from relay.services.result import Result

logger = get_logger("timeout_bridge")

PENDING_KEY = "pending"

DEFAULT_PENDING_TTL_SECONDS = 300
DEFAULT_BACKGROUND_CEILING_SECONDS = 120.0

Work = Callable[[], Awaitable[Result[str]]]


def fingerprint(user_id: str, message: str) -> str:
    return hashlib.sha256(f"{user_id}\n{message}".encode("utf-8")).hexdigest()


def pending_key(request_fingerprint: str) -> str:
    return f"{PENDING_KEY}:{request_fingerprint}"


class TimeoutBridge:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        pending_ttl_seconds: int = DEFAULT_PENDING_TTL_SECONDS,
        background_ceiling_seconds: float = DEFAULT_BACKGROUND_CEILING_SECONDS,
    ) -> None:
        self.store = store
        self.pending_ttl_seconds = pending_ttl_seconds
        self.background_ceiling_seconds = background_ceiling_seconds
        self._background: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._background)

    async def call_with_deadline(
        self,
        request_fingerprint: str,
        deadline: float,
        work: Work,
    ) -> Optional[Result[str]]:
        """Run ``work`` within ``deadline`` seconds.

        Returns the result of ``work``, a result recovered from an earlier
        timed-out attempt with the same fingerprint, or None when the deadline
        passed first (the caller should answer with a placeholder).
        """
        recovered = await self.consume(request_fingerprint)
        if recovered is not None:
            logger.info("Recovered pending result", extra={"context": {"fingerprint": request_fingerprint[:12]}})
            return recovered

        task = asyncio.create_task(self._run(work))
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=deadline)
        except asyncio.TimeoutError:
            logger.info(
                "Reply deadline passed, completion continues in background",
                extra={"context": {"fingerprint": request_fingerprint[:12], "deadline": deadline}},
            )
            self._redirect(request_fingerprint, task)
            return None
        except asyncio.CancelledError:
            # The webhook request went away; keep the work for the retry.
            self._redirect(request_fingerprint, task)
            raise

    async def consume(self, request_fingerprint: str) -> Optional[Result[str]]:
        """Read and delete the parked result for ``request_fingerprint``."""
        payload = await self.store.pop(pending_key(request_fingerprint))
        if payload is None:
            return None
        try:
            return Result.from_dict(json.loads(payload))
        except ValueError as exc:
            logger.warning(f"Discarding unreadable pending result: {exc}")
            return None

    async def _run(self, work: Work) -> Result[str]:
        try:
            return await work()
        except ProviderError as exc:
            return Result.failure(str(exc), "provider_error")
        except Exception as exc:
            logger.error(f"Bridged work failed: {exc}", exc_info=True)
            return Result.failure(f"request failed: {exc}", "provider_error")

    def _redirect(self, request_fingerprint: str, task: asyncio.Task) -> None:
        follower = asyncio.create_task(self._park_when_done(request_fingerprint, task))
        self._background.add(follower)
        follower.add_done_callback(self._background.discard)

    async def _park_when_done(self, request_fingerprint: str, task: asyncio.Task) -> None:
        try:
            result = await asyncio.wait_for(task, timeout=self.background_ceiling_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Background completion exceeded ceiling, cancelled",
                extra={
                    "context": {
                        "fingerprint": request_fingerprint[:12],
                        "ceiling": self.background_ceiling_seconds,
                    }
                },
            )
            result = Result.failure(
                f"no reply after {self.background_ceiling_seconds:g}s, please try again",
                "timeout",
            )

        payload = json.dumps(result.to_dict(), ensure_ascii=False)
        await self.store.set(pending_key(request_fingerprint), payload, self.pending_ttl_seconds)
        logger.info(
            "Pending result parked",
            extra={"context": {"fingerprint": request_fingerprint[:12], "ok": result.ok}},
        )

    async def aclose(self, timeout: float = 5.0) -> None:
        """Give parked work ``timeout`` seconds to land, then cancel the rest."""
        if not self._background:
            return
        pending = list(self._background)
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for follower in still_running:
            follower.cancel()
        if still_running:
            logger.warning(f"Cancelled {len(still_running)} background completions on shutdown")
            await asyncio.gather(*still_running, return_exceptions=True)
