"""Detached waits for on-chain confirmation."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from functools import lru_cache
from threading import Lock
from typing import Callable, Dict, Optional

from settings import get_settings

logger = logging.getLogger(__name__)


class ConfirmationWorker:
    """Runs confirmation waits off the request path.

    Each tracked job waits for its transaction, then runs its completion
    callback. Failures in either step are logged and dropped; nothing is
    retried and nothing reaches a client. Jobs live until they finish or the
    process shuts the pool down.
    """

    def __init__(self, workers: int = 2) -> None:
        self.executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="anchor-confirm"
        )
        self._futures: Dict[str, Future[None]] = {}
        self._futures_lock = Lock()

    def track(
        self,
        batch_id: str,
        tx_hash: str,
        confirm: Callable[[str], str],
        on_confirmed: Callable[[str], None],
    ) -> Future[None]:
        future = self.executor.submit(
            self._run, batch_id=batch_id, tx_hash=tx_hash, confirm=confirm, on_confirmed=on_confirmed
        )
        with self._futures_lock:
            self._futures[tx_hash] = future
        future.add_done_callback(lambda _f, key=tx_hash: self._clear_future(key))
        return future

    def pending(self, tx_hash: str) -> Optional[Future[None]]:
        with self._futures_lock:
            return self._futures.get(tx_hash)

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _clear_future(self, tx_hash: str) -> None:
        with self._futures_lock:
            self._futures.pop(tx_hash, None)

    def _run(
        self,
        batch_id: str,
        tx_hash: str,
        confirm: Callable[[str], str],
        on_confirmed: Callable[[str], None],
    ) -> None:
        context = {"batch_id": batch_id, "tx_hash": tx_hash}
        try:
            confirmed_hash = confirm(tx_hash)
        except Exception:
            logger.exception("Background confirmation failed", extra=context)
            return

        logger.info("Anchor confirmed on chain", extra=context)
        try:
            on_confirmed(confirmed_hash)
        except Exception:
            logger.exception("Post-confirmation step failed", extra=context)


@lru_cache
def build_default_confirmations(workers: Optional[int] = None) -> ConfirmationWorker:
    return ConfirmationWorker(workers=workers or get_settings().confirmation_workers)
