"""Lazy, memoized access to the shared classifier.

The first ``acquire()`` starts construction; every caller arriving while it is
pending awaits the same future. A failed construction clears the cell so the
next ``acquire()`` retries.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from wingscan.errors import ModelLoadError, ModelUnavailable, WingScanError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from wingscan.ml.classifier import ClassifierConfig, ClassifierLoader, ImageClassifier

logger = logging.getLogger(__name__)


class ModelSession:
    """Owns the single classifier handle for the process."""

    def __init__(self, loader: ClassifierLoader | None, config: ClassifierConfig) -> None:
        self._loader = loader
        self._config = config
        self._pending: asyncio.Future[ImageClassifier] | None = None
        self._load_attempts = 0

    @property
    def loaded(self) -> bool:
        """Whether a classifier has been constructed successfully."""
        pending = self._pending
        return pending is not None and pending.done() and not pending.cancelled() and pending.exception() is None

    @property
    def load_attempts(self) -> int:
        return self._load_attempts

    async def acquire(self) -> ImageClassifier:
        """Return the shared classifier, constructing it on first use.

        Raises:
            ModelUnavailable: If no loader is configured or it has no callable ``load``.
            ModelLoadError: If construction fails.
        """
        if self._pending is None or self._pending.cancelled():
            load = getattr(self._loader, "load", None)
            if not callable(load):
                raise ModelUnavailable()
            self._pending = asyncio.ensure_future(self._construct(load))
        # Shield so a cancelled waiter does not cancel the shared construction.
        return await asyncio.shield(self._pending)

    async def _construct(self, load: Callable[[ClassifierConfig], Awaitable[ImageClassifier]]) -> ImageClassifier:
        self._load_attempts += 1
        logger.info(
            "Loading classifier (version=%s, alpha=%s, attempt=%d)",
            self._config.version,
            self._config.alpha,
            self._load_attempts,
        )
        try:
            classifier = await load(self._config)
        except WingScanError:
            self._pending = None
            raise
        except Exception as exc:
            self._pending = None
            logger.exception("Classifier construction failed")
            raise ModelLoadError(f"Classifier model failed to load: {exc}") from exc
        logger.info("Classifier %s ready", classifier.model_name)
        return classifier
