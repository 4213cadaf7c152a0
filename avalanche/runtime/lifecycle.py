"""Single-request lifecycle that keeps the consumer thread responsive.

A consumer (terminal loop, HTTP handler, UI frame) calls :meth:`submit` once
and then :meth:`poll` as often as it likes. The network exchange runs on a
one-worker executor; ``poll`` never blocks and reports ``Idle``, ``Pending``
or ``Resolved`` exactly as the state machine holds it.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Callable, Union

from ..ai.types import Analyzer, RequestOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Pending:
    started_at: float


@dataclass(frozen=True)
class Resolved:
    outcome: RequestOutcome


LifecycleStatus = Union[Idle, Pending, Resolved]

AnalyzerFactory = Callable[[str], Analyzer]


class AnalysisInFlightError(RuntimeError):
    """Raised when a submission arrives while another request is pending."""


def default_analyzer_factory(api_key: str) -> Analyzer:
    from ..ai.openai_client import OpenAIAvalancheClassifier

    return OpenAIAvalancheClassifier(api_key=api_key)


class AnalysisLifecycle:
    def __init__(
        self,
        analyzer_factory: AnalyzerFactory = default_analyzer_factory,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self._analyzer_factory = analyzer_factory
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="avalanche-analysis"
        )
        self._lock = threading.Lock()
        self._status: LifecycleStatus = Idle()
        self._future: Future[RequestOutcome] | None = None

    def __enter__(self) -> "AnalysisLifecycle":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def status(self) -> LifecycleStatus:
        with self._lock:
            return self._status

    def submit(self, api_key: str, image_bytes: bytes) -> Pending:
        if not api_key or not api_key.strip():
            raise ValueError("An API key is required to analyze an image")
        if not image_bytes:
            raise ValueError("Image payload is empty")

        with self._lock:
            if isinstance(self._status, Pending):
                raise AnalysisInFlightError(
                    "An avalanche analysis is already in progress"
                )
            analyzer = self._analyzer_factory(api_key.strip())
            pending = Pending(started_at=time.monotonic())
            self._future = self._executor.submit(analyzer.analyze, image_bytes)
            self._status = pending

        logger.info("Submitted avalanche analysis image_bytes=%d", len(image_bytes))
        return pending

    def poll(self) -> LifecycleStatus:
        with self._lock:
            if not isinstance(self._status, Pending):
                return self._status
            future = self._future
            if future is None or not future.done():
                return self._status

            self._future = None
            if future.cancelled():
                logger.warning("Avalanche analysis was cancelled before it ran")
                self._status = Idle()
                return self._status

            exc = future.exception()
            if exc is not None:
                self._status = Idle()
                logger.error(
                    "Avalanche analysis failed unexpectedly",
                    exc_info=(type(exc), exc, exc.__traceback__),
                )
                raise exc

            elapsed = time.monotonic() - self._status.started_at
            self._status = Resolved(outcome=future.result())
            logger.info(
                "Avalanche analysis resolved outcome=%s elapsed=%.2fs",
                type(self._status.outcome).__name__,
                elapsed,
            )
            return self._status

    def wait(self, timeout: float | None = None) -> LifecycleStatus:
        """Block until the pending request resolves or ``timeout`` elapses."""
        with self._lock:
            future = self._future
        if future is not None:
            try:
                future.exception(timeout=timeout)
            except (FutureTimeoutError, CancelledError):
                pass
        return self.poll()

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)


__all__ = [
    "AnalysisInFlightError",
    "AnalysisLifecycle",
    "AnalyzerFactory",
    "Idle",
    "LifecycleStatus",
    "Pending",
    "Resolved",
    "default_analyzer_factory",
]
