from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional

from narrative_studio.errors import InvalidTransition

THUMBNAIL_ID = "thumbnail"


class GenerationState(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class SceneDraft:
    original_text: str
    visual_prompt: str


@dataclass(frozen=True)
class DecompositionResult:
    thumbnail_prompt: str
    scenes: List[SceneDraft]


def new_entity_id() -> str:
    return uuid.uuid4().hex


@dataclass
class RenderTarget:
    """Prompt plus render lifecycle, shared by scenes and the thumbnail.

    `request_token` counts issued render requests. A completion is only
    applied while its token is still the outstanding one.
    """

    id: str
    visual_prompt: str
    state: GenerationState = GenerationState.IDLE
    image_data_url: Optional[str] = None
    error: Optional[str] = None
    request_token: int = 0

    @property
    def is_generating(self) -> bool:
        return self.state is GenerationState.GENERATING

    def begin_render(self) -> int:
        # Previous image stays visible while regenerating
        self.request_token += 1
        self.state = GenerationState.GENERATING
        self.error = None
        return self.request_token

    def is_current(self, token: int) -> bool:
        return self.is_generating and token == self.request_token

    def finish_render(self, image_data_url: str) -> None:
        if not self.is_generating:
            raise InvalidTransition(f"{self.id}: cannot succeed from {self.state.value}")
        self.state = GenerationState.SUCCEEDED
        self.image_data_url = image_data_url
        self.error = None

    def fail_render(self, message: str) -> None:
        if not self.is_generating:
            raise InvalidTransition(f"{self.id}: cannot fail from {self.state.value}")
        self.state = GenerationState.FAILED
        self.error = message
        self.image_data_url = None

    def snapshot(self):
        return replace(self)


@dataclass
class Scene(RenderTarget):
    original_text: str = ""


@dataclass
class Thumbnail(RenderTarget):
    id: str = THUMBNAIL_ID
    visual_prompt: str = ""


def scenes_from_drafts(drafts: List[SceneDraft]) -> List[Scene]:
    return [
        Scene(id=new_entity_id(), visual_prompt=d.visual_prompt, original_text=d.original_text)
        for d in drafts
    ]


@dataclass
class CompletionEvent:
    """Result of one background call, tagged with what it was issued for."""

    kind: str
    epoch: int
    entity_id: Optional[str] = None
    token: int = 0
    payload: object = None
    error: Optional[str] = None
