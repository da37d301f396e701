"""Generation controller.

Drives one counseling response at a time: makes sure the model is loaded,
formats and encodes the prompt, pulls tokens from the engine while
publishing partial text at a fixed cadence, and reports throughput.

Blocking work (weight loading, token production) runs in worker threads
via ``asyncio.to_thread``. Everything a UI observes goes through the
StateChannel, so the controller never touches view state directly.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any

from contracts.engine import GenerationParams, InferenceEngine, ModelHandle
from counselor.errors import ModelError, generation_failed
from counselor.metrics import GenerationMetrics
from counselor.observability.logging import log_event
from counselor.state import SessionField, StateChannel, StateUpdate
from counselor.stop_policy import StopPolicy
from models.loader import ModelLoader
from models.prompt_template import PromptTemplate

logger = logging.getLogger(__name__)


def wall_clock_seed() -> int:
    """Seed derived from the current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


class ControllerState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    FAILED = "failed"


@dataclass
class GenerationSession:
    """Per-call bookkeeping. Created by ``generate`` and discarded after it."""

    started_at: float
    running: bool = True
    accumulated_output: str = ""
    token_count: int = 0
    published_output: str = ""


class GenerationController:
    """Single-flight generation over a load-once model.

    At most one session is active. A ``generate`` call that arrives while
    another is running is ignored: nothing is queued and nothing is
    published.
    """

    def __init__(
        self,
        loader: ModelLoader,
        engine: InferenceEngine,
        channel: StateChannel,
        *,
        template: PromptTemplate | None = None,
        stop_policy: StopPolicy | None = None,
        display_every_n_tokens: int = 4,
        temperature: float = 0.6,
        top_p: float = 1.0,
        clock: Callable[[], float] = time.perf_counter,
        seed_source: Callable[[], int] = wall_clock_seed,
    ) -> None:
        """Initialize the controller.

        Args:
            loader: Load-once cache that owns the model handle.
            engine: Engine that produces tokens for a loaded handle.
            channel: Destination for every UI-observable update.
            template: Prompt formatter. Defaults to the counselor template.
            stop_policy: Stop condition. Defaults to 240 tokens / ``<|end|>``.
            display_every_n_tokens: Publish partial output every N tokens.
            temperature: Sampling temperature passed to the engine.
            top_p: Nucleus sampling threshold passed to the engine.
            clock: Monotonic clock used for throughput, in seconds.
            seed_source: Supplies a seed when ``generate`` is not given one.
        """
        if display_every_n_tokens < 1:
            msg = f"display_every_n_tokens must be >= 1, got {display_every_n_tokens}"
            raise ValueError(msg)

        self._loader = loader
        self._engine = engine
        self._channel = channel
        self._template = template or PromptTemplate()
        self._stop_policy = stop_policy or StopPolicy()
        self._display_every = display_every_n_tokens
        self._temperature = temperature
        self._top_p = top_p
        self._clock = clock
        self._seed_source = seed_source

        self._state = ControllerState.IDLE
        self._session: GenerationSession | None = None
        self.last_metrics: GenerationMetrics | None = None

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is not ControllerState.IDLE

    @property
    def session(self) -> GenerationSession | None:
        """Copy of the in-flight session, or None between calls."""
        if self._session is None:
            return None
        return replace(self._session)

    @property
    def stop_policy(self) -> StopPolicy:
        return self._stop_policy

    def _publish(self, field: SessionField, value: Any) -> None:
        self._channel.publish(StateUpdate(field, value))

    def _report_progress(self, fraction: float) -> None:
        pct = int(fraction * 100)
        self._publish(
            SessionField.MODEL_INFO,
            f"Downloading {self._loader.config.display_name}: {pct}%",
        )

    async def _ensure_loaded(self) -> ModelHandle:
        if self._channel.loop is None:
            # Progress arrives from the loader thread
            self._channel.bind()
        was_loaded = self._loader.is_loaded()
        handle = await asyncio.to_thread(self._loader.load, self._report_progress)
        if not was_loaded:
            self._publish(
                SessionField.MODEL_INFO,
                f"Loaded {handle.model_id}.  Weights: {int(handle.weights_mb)}M",
            )
        return handle

    async def preload(self) -> None:
        """Load the model ahead of the first request.

        Load failures are logged and dropped; the next ``generate`` retries.
        """
        try:
            await self._ensure_loaded()
        except ModelError as e:
            logger.warning("Model preload failed: %s (code: %s)", e.message, e.code)

    async def generate(self, prompt_text: str, seed: int | None = None) -> GenerationMetrics | None:
        """Produce a response to ``prompt_text``.

        Args:
            prompt_text: Raw user text, embedded verbatim in the prompt.
            seed: Sampling seed. Derived from the wall clock when omitted.

        Returns:
            Metrics for the session, or None if the call was ignored or failed.
            Failures are published as ``output`` and never raised.
        """
        if self._state is not ControllerState.IDLE:
            logger.info("Generation already in progress, ignoring request")
            return None
        self._state = ControllerState.RUNNING

        session = GenerationSession(started_at=self._clock())
        self._session = session
        self._publish(SessionField.RUNNING, True)
        self._publish(SessionField.OUTPUT, "")

        try:
            handle = await self._ensure_loaded()
            if seed is None:
                seed = self._seed_source()
            try:
                await asyncio.to_thread(self._run_session, session, handle, prompt_text, seed)
            except ModelError:
                raise
            except Exception as e:
                raise generation_failed(
                    self._loader.config.display_name, e, tokens_generated=session.token_count
                ) from e

            metrics = GenerationMetrics(
                token_count=session.token_count,
                elapsed_seconds=self._clock() - session.started_at,
            )
            self.last_metrics = metrics
            self._publish(SessionField.STATUS, metrics.status)
            log_event(
                logger,
                "generation.complete",
                tokens=metrics.token_count,
                elapsed_ms=round(metrics.elapsed_seconds * 1000, 2),
                tokens_per_second=round(metrics.tokens_per_second, 3),
            )
            return metrics
        except ModelError as e:
            self._state = ControllerState.FAILED
            logger.error("Generation failed: %s (code: %s)", e.message, e.code)
            self._publish(SessionField.OUTPUT, f"Failed: {e}")
            return None
        finally:
            session.running = False
            self._session = None
            self._state = ControllerState.IDLE
            self._publish(SessionField.RUNNING, False)

    def _run_session(
        self,
        session: GenerationSession,
        handle: ModelHandle,
        prompt_text: str,
        seed: int,
    ) -> None:
        """Encode the prompt and consume the token stream. Runs in a worker thread."""
        tokenizer = handle.tokenizer
        prompt_tokens = tokenizer.encode(self._template.format(prompt_text))
        params = GenerationParams(
            seed=seed,
            temperature=self._temperature,
            top_p=self._top_p,
            max_tokens=self._stop_policy.max_tokens,
        )
        logger.debug("Prompt encoded to %d tokens (seed=%d)", len(prompt_tokens), seed)

        produced: list[int] = []
        stream = self._engine.produce_tokens(prompt_tokens, params, handle)
        try:
            for token in stream:
                produced.append(token)
                session.token_count = len(produced)
                session.accumulated_output = tokenizer.decode(produced)

                if session.token_count % self._display_every == 0:
                    self._publish_output(session, session.accumulated_output)

                if self._stop_policy.should_stop(session.token_count, tokenizer.decode([token])):
                    break
        finally:
            stream.close()

        # Flush whatever the cadence skipped
        session.accumulated_output = tokenizer.decode(produced)
        if session.accumulated_output != session.published_output:
            self._publish_output(session, session.accumulated_output)

    def _publish_output(self, session: GenerationSession, text: str) -> None:
        session.published_output = text
        self._publish(SessionField.OUTPUT, text)
