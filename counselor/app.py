"""Composition root.

Wires configuration, the model loader, the generation controller and the
observable session state together. A presentation layer owns one
CounselorApp, reads ``app.view`` and calls ``app.submit(prompt)``.

Usage:
    app = CounselorApp()
    await app.start()           # begins dispatching and preloads the model
    app.submit("I feel anxious")
    ...
    await app.stop()
"""

from __future__ import annotations

import asyncio
import logging

from contracts.engine import InferenceEngine
from counselor.config import CounselorConfig, get_config
from counselor.controller import GenerationController
from counselor.metrics import GenerationMetrics
from counselor.state import SessionView, StateChannel, StateDispatcher
from counselor.stop_policy import StopPolicy
from counselor.utils.logging import setup_logging
from models.loader import ModelConfig, ModelLoader

logger = logging.getLogger(__name__)


class CounselorApp:
    """Owns the single session controller and its observable view."""

    def __init__(
        self,
        config: CounselorConfig | None = None,
        engine: InferenceEngine | None = None,
        *,
        configure_logging: bool = True,
    ) -> None:
        self.config = config if config is not None else get_config()
        if configure_logging:
            setup_logging(self.config.logging.level, structured=self.config.logging.structured)

        if engine is None:
            from models.mlx_engine import MLXEngine

            engine = MLXEngine()

        generation = self.config.generation
        model = self.config.model

        self.loader = ModelLoader(engine, ModelConfig.from_settings(model))
        self.channel = StateChannel()
        self.view = SessionView()
        self.dispatcher = StateDispatcher(self.channel, self.view)
        self.controller = GenerationController(
            self.loader,
            engine,
            self.channel,
            stop_policy=StopPolicy(
                max_tokens=generation.max_tokens,
                end_marker=generation.end_marker,
            ),
            display_every_n_tokens=generation.display_every_n_tokens,
            temperature=model.temperature,
            top_p=model.top_p,
        )

        self._dispatch_task: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[GenerationMetrics | None]] = set()

    async def start(self, *, preload: bool = True) -> None:
        """Start applying state updates and, by default, load the model."""
        if self._dispatch_task is None:
            self.channel.bind()
            self._dispatch_task = asyncio.create_task(self.dispatcher.run())
        logger.info("Counselor started with model %s", self.loader.config.display_name)
        if preload:
            await self.controller.preload()

    def submit(self, prompt: str) -> asyncio.Task[GenerationMetrics | None]:
        """Schedule a generation for ``prompt`` on the running loop.

        Ignored by the controller if a generation is already running.
        """
        task = asyncio.create_task(self.controller.generate(prompt))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def stop(self) -> None:
        """Wait for in-flight generations, then stop the dispatcher."""
        if self._pending:
            await asyncio.gather(*self._pending)
        if self._dispatch_task is not None:
            self.channel.close()
            await self._dispatch_task
            self._dispatch_task = None
        logger.info("Counselor stopped")
