from __future__ import annotations

from typing import Callable, Dict, List, Optional

import pytest

from narrative_studio.config import StudioConfig
from narrative_studio.controllers import Studio
from narrative_studio.errors import DecompositionFailure, RenderFailure
from narrative_studio.types import DecompositionResult, SceneDraft


class StubGateway:
    """Stands in for GenerationGateway; answers are decided per prompt."""

    def __init__(self, result: Optional[DecompositionResult] = None) -> None:
        self.result = result
        self.decompose_error: Optional[Exception] = None
        self.images: Dict[str, str] = {}
        self.failing_prompts: set[str] = set()
        self.rendered: List[str] = []

    def decompose(self, narrative: str) -> DecompositionResult:
        if self.decompose_error is not None:
            raise self.decompose_error
        if self.result is None:
            raise DecompositionFailure("no result configured")
        return self.result

    def render(self, prompt: str) -> str:
        self.rendered.append(prompt)
        if prompt in self.failing_prompts:
            raise RenderFailure("No image generated.")
        return self.images.get(prompt, f"data:image/png;base64,{len(self.rendered)}")


class HeldSpawner:
    """Keeps background work until a test decides when and in what order it runs."""

    def __init__(self) -> None:
        self.pending: List[Callable[[], None]] = []

    def __call__(self, work: Callable[[], None]) -> None:
        self.pending.append(work)

    def run(self, index: int = 0) -> None:
        self.pending.pop(index)()

    def run_all(self) -> None:
        while self.pending:
            self.run(0)


def two_sentence_result() -> DecompositionResult:
    return DecompositionResult(
        thumbnail_prompt="YouTube Thumbnail style, extreme close-up, text 'KAYA MENDADAK!'",
        scenes=[
            SceneDraft("Budi berjalan ke pasar.", "Realistic photo of Budi, a sun-tanned Indonesian man, walking to a market"),
            SceneDraft("Dia membeli apel.", "Realistic photo of Budi, a sun-tanned Indonesian man, buying apples"),
        ],
    )


@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway(two_sentence_result())


@pytest.fixture
def spawner() -> HeldSpawner:
    return HeldSpawner()


@pytest.fixture
def studio(gateway: StubGateway, spawner: HeldSpawner) -> Studio:
    return Studio(gateway, spawn=spawner)  # type: ignore[arg-type]


@pytest.fixture
def loaded_studio(studio: Studio, spawner: HeldSpawner) -> Studio:
    studio.submit_narrative("Budi berjalan ke pasar. Dia membeli apel.")
    spawner.run_all()
    studio.drain_events()
    return studio


@pytest.fixture
def cfg() -> StudioConfig:
    return StudioConfig(
        openrouter_api_key="test-key",
        decompose_model="google/gemini-2.5-flash",
        image_model="google/gemini-2.5-flash-image-preview",
        request_timeout_sec=5,
    )
