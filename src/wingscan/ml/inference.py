"""Inference execution layer.

Architecture:
    Orchestrator (async) -> InferencePool.run -> ThreadPoolExecutor(1) -> ONNX inference

The orchestrator is single-flight, so one worker thread is enough. Calls are
bounded by the configured inference timeout; an expired call raises
``TimeoutError`` while its worker thread runs to completion in the background.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

    from wingscan.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InferencePool:
    """Runs blocking model calls off the event loop with an optional timeout."""

    def __init__(self, settings: Settings) -> None:
        self._timeout = settings.inference_timeout or None
        self._executor = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="onnx-inference",
        )
        self._active_count: int = 0
        self._counter_lock = threading.Lock()

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Submit a synchronous function to the inference thread.

        Raises:
            TimeoutError: If the call does not finish within the configured timeout.
        """
        with self._counter_lock:
            self._active_count += 1
        try:
            loop = asyncio.get_running_loop()
            future = loop.run_in_executor(self._executor, func, *args)
            try:
                return await asyncio.wait_for(future, timeout=self._timeout)
            except TimeoutError:
                if self._timeout is not None and future.cancelled():
                    logger.warning(
                        "Inference exceeded %.1fs; the worker thread cannot be interrupted and keeps running",
                        self._timeout,
                    )
                raise
        finally:
            with self._counter_lock:
                self._active_count -= 1

    @property
    def timeout(self) -> float | None:
        return self._timeout

    @property
    def active_count(self) -> int:
        """Number of currently running inference calls."""
        with self._counter_lock:
            return self._active_count

    def shutdown(self) -> None:
        """Shut down the thread pool executor."""
        self._executor.shutdown(wait=False, cancel_futures=True)
