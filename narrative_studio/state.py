from __future__ import annotations

import queue
from dataclasses import dataclass, field
from typing import List, Optional

from narrative_studio.types import CompletionEvent, Scene, Thumbnail


@dataclass
class NarrativeSession:
    """Everything produced for one narrative submission.

    Only the owning thread mutates a session. Worker threads talk to it
    exclusively through `post`, and the owner applies queued events when it
    drains them.
    """

    narrative: str = ""
    scenes: List[Scene] = field(default_factory=list)
    thumbnail: Optional[Thumbnail] = None

    decomposing: bool = False
    error: Optional[str] = None
    notice: Optional[str] = None

    # Bumped on every submission; completions from older epochs are stale
    epoch: int = 0
    events: "queue.Queue[CompletionEvent]" = field(default_factory=queue.Queue)

    def reset(self, narrative: str) -> int:
        self.epoch += 1
        self.narrative = narrative
        self.scenes = []
        self.thumbnail = None
        self.decomposing = True
        self.error = None
        self.notice = None
        return self.epoch

    def is_current(self, epoch: int) -> bool:
        return epoch == self.epoch

    def find_scene(self, scene_id: str) -> Optional[Scene]:
        for scene in self.scenes:
            if scene.id == scene_id:
                return scene
        return None

    def post(self, event: CompletionEvent) -> None:
        self.events.put(event)

    def pending_events(self) -> List[CompletionEvent]:
        drained: List[CompletionEvent] = []
        try:
            while True:
                drained.append(self.events.get_nowait())
        except queue.Empty:
            pass
        return drained
