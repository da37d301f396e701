"""Pytest configuration for counselor tests.

Provides in-memory engine and tokenizer fakes so the controller, loader
and state channel can be exercised without MLX or model weights.
"""

from collections.abc import Callable, Iterable, Sequence

import pytest

from contracts.engine import GenerationParams, ModelHandle
from counselor.config import reset_config
from counselor.controller import GenerationController
from counselor.state import SessionView, StateChannel, StateDispatcher, StateUpdate
from models.loader import ModelConfig, ModelLoader, reset_loader

END_ID = 0
END_MARKER = "<|end|>"
FAKE_MODEL_PATH = "test-org/fake-phi-3"


class FakeTokenizer:
    """Word-per-token tokenizer. Token ``n`` decodes to ``wn``; ``END_ID`` to the end marker."""

    eos_token = END_MARKER

    def __init__(self) -> None:
        self.encoded: list[str] = []

    def encode(self, text: str) -> list[int]:
        self.encoded.append(text)
        return [1000 + i for i in range(len(text.split()))]

    def decode(self, tokens: Sequence[int]) -> str:
        return " ".join(END_MARKER if t == END_ID else f"w{t}" for t in tokens)


class FakeTokenStream:
    """Pull-based token stream that records how it was consumed."""

    def __init__(self, tokens: Iterable[int], fail_after: int | None = None) -> None:
        self._tokens = iter(tokens)
        self._fail_after = fail_after
        self.yielded = 0
        self.closed = False

    def __iter__(self) -> "FakeTokenStream":
        return self

    def __next__(self) -> int:
        if self.closed:
            raise StopIteration
        if self._fail_after is not None and self.yielded >= self._fail_after:
            raise RuntimeError("engine exploded")
        token = next(self._tokens)
        self.yielded += 1
        return token

    def close(self) -> None:
        self.closed = True


class FakeEngine:
    """InferenceEngine double.

    ``load_error`` and ``fail_after`` apply to the next call only, so a
    failing call can be followed by a successful one.
    """

    def __init__(
        self,
        tokens: Iterable[int] | None = None,
        *,
        load_error: Exception | None = None,
        fail_after: int | None = None,
        weights_mb: float = 2150.0,
    ) -> None:
        self.tokens = list(range(1, 301)) if tokens is None else list(tokens)
        self.load_error = load_error
        self.fail_after = fail_after
        self.weights_mb = weights_mb
        self.tokenizer = FakeTokenizer()
        self.load_calls = 0
        self.progress_seen: list[float] = []
        self.streams: list[FakeTokenStream] = []
        self.params: list[GenerationParams] = []
        self.prompt_tokens: list[list[int]] = []

    def load(self, config: ModelConfig, on_progress: Callable[[float], None] | None) -> ModelHandle:
        self.load_calls += 1
        if on_progress is not None:
            on_progress(0.5)
            self.progress_seen.append(0.5)
        if self.load_error is not None:
            error, self.load_error = self.load_error, None
            raise error
        if on_progress is not None:
            on_progress(1.0)
            self.progress_seen.append(1.0)
        return ModelHandle(
            model=object(),
            tokenizer=self.tokenizer,
            model_id=config.model_path,
            weights_mb=self.weights_mb,
        )

    def produce_tokens(
        self, prompt_tokens: Sequence[int], params: GenerationParams, handle: ModelHandle
    ) -> FakeTokenStream:
        self.prompt_tokens.append(list(prompt_tokens))
        self.params.append(params)
        fail_after, self.fail_after = self.fail_after, None
        stream = FakeTokenStream(self.tokens, fail_after=fail_after)
        self.streams.append(stream)
        return stream


def drain_updates(channel: StateChannel) -> list[StateUpdate]:
    """Pop every queued update off ``channel`` in order."""
    updates = []
    while not channel.empty():
        update = channel.get_nowait()
        if update is not None:
            updates.append(update)
    return updates


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Clear process-wide singletons between tests."""
    reset_config()
    reset_loader()
    yield
    reset_config()
    reset_loader()


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def model_config():
    """Unregistered model path with a tiny memory estimate so the RAM check passes."""
    return ModelConfig(model_path=FAKE_MODEL_PATH, estimated_memory_mb=1)


@pytest.fixture
def loader(engine, model_config):
    return ModelLoader(engine, model_config)


@pytest.fixture
def channel():
    return StateChannel()


@pytest.fixture
def view():
    return SessionView()


@pytest.fixture
def dispatcher(channel, view):
    return StateDispatcher(channel, view)


@pytest.fixture
def make_controller(loader, engine, channel):
    """Factory for controllers sharing the fixture loader, engine and channel."""

    def _make(**kwargs) -> GenerationController:
        kwargs.setdefault("seed_source", lambda: 42)
        return GenerationController(loader, engine, channel, **kwargs)

    return _make
