from __future__ import annotations

import threading
from typing import Callable, List, Optional

from narrative_studio.gateway import GenerationGateway
from narrative_studio.state import NarrativeSession
from narrative_studio.types import (
    THUMBNAIL_ID,
    CompletionEvent,
    RenderTarget,
    Scene,
    Thumbnail,
    scenes_from_drafts,
)

SCENE_RENDER_ERROR = "Gagal membuat gambar. Coba lagi."
THUMBNAIL_RENDER_ERROR = "Gagal membuat thumbnail."
DECOMPOSE_ERROR = "Gagal memproses narasi. Pastikan API Key valid."
NO_SCENES_NOTICE = "Model tidak menghasilkan adegan."

DECOMPOSE_DONE = "decompose_done"
DECOMPOSE_ERROR_EVENT = "decompose_error"

Spawn = Callable[[Callable[[], None]], None]


def spawn_thread(work: Callable[[], None]) -> None:
    threading.Thread(target=work, daemon=True).start()


class _RenderController:
    """Render lifecycle shared by the scene list and the thumbnail."""

    kind = ""
    failure_message = SCENE_RENDER_ERROR

    def __init__(
        self,
        session: NarrativeSession,
        gateway: GenerationGateway,
        *,
        spawn: Optional[Spawn] = None,
        on_log: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.session = session
        self.gateway = gateway
        self.spawn: Spawn = spawn or spawn_thread
        self.on_log: Callable[[str], None] = on_log or (lambda _msg: None)

    @property
    def done_kind(self) -> str:
        return f"{self.kind}_render_done"

    @property
    def error_kind(self) -> str:
        return f"{self.kind}_render_error"

    def handles(self, event: CompletionEvent) -> bool:
        return event.kind in (self.done_kind, self.error_kind)

    def _start_render(self, target: RenderTarget, prompt: str) -> int:
        token = target.begin_render()
        epoch = self.session.epoch
        post = self.session.post
        gateway = self.gateway
        entity_id = target.id
        done_kind, error_kind = self.done_kind, self.error_kind

        def worker() -> None:
            try:
                url = gateway.render(prompt)
                post(CompletionEvent(kind=done_kind, epoch=epoch, entity_id=entity_id, token=token, payload=url))
            except Exception as e:  # noqa: BLE001
                post(CompletionEvent(kind=error_kind, epoch=epoch, entity_id=entity_id, token=token, error=str(e)))

        self.spawn(worker)
        return token

    def _apply_render(self, target: Optional[RenderTarget], event: CompletionEvent) -> bool:
        if not self.session.is_current(event.epoch) or target is None:
            self.on_log(f"🗑️ Stale result discarded for {event.entity_id} (no longer in session)")
            return False
        if not target.is_current(event.token):
            self.on_log(f"🗑️ Stale result discarded for {event.entity_id} (token {event.token}, current {target.request_token})")
            return False
        if event.kind == self.done_kind:
            target.finish_render(str(event.payload))
            self.on_log(f"✅ {event.entity_id} image ready")
        else:
            self.on_log(f"❌ {event.entity_id} render failed: {event.error}")
            target.fail_render(self.failure_message)
        return True


class ThumbnailController(_RenderController):
    kind = "thumbnail"
    failure_message = THUMBNAIL_RENDER_ERROR

    def populate(self, prompt: str) -> Thumbnail:
        self.session.thumbnail = Thumbnail(visual_prompt=prompt)
        return self.session.thumbnail

    def snapshot(self) -> Optional[Thumbnail]:
        thumb = self.session.thumbnail
        return thumb.snapshot() if thumb else None

    def update_prompt(self, text: str) -> bool:
        thumb = self.session.thumbnail
        if thumb is None:
            return False
        thumb.visual_prompt = text
        return True

    def request_image(self, prompt: Optional[str] = None) -> bool:
        thumb = self.session.thumbnail
        if thumb is None:
            self.on_log("⚠️ No thumbnail in the current session")
            return False
        if prompt is not None:
            thumb.visual_prompt = prompt
        token = self._start_render(thumb, thumb.visual_prompt)
        self.on_log(f"🎨 Thumbnail render issued (token {token})")
        return True

    def apply(self, event: CompletionEvent) -> bool:
        return self._apply_render(self.session.thumbnail, event)


class SceneListController(_RenderController):
    kind = "scene"
    failure_message = SCENE_RENDER_ERROR

    def __init__(
        self,
        session: NarrativeSession,
        gateway: GenerationGateway,
        thumbnails: ThumbnailController,
        *,
        spawn: Optional[Spawn] = None,
        on_log: Optional[Callable[[str], None]] = None,
    ) -> None:
        super().__init__(session, gateway, spawn=spawn, on_log=on_log)
        self.thumbnails = thumbnails

    # ---------- Queries ----------
    def scenes(self) -> List[Scene]:
        return [s.snapshot() for s in self.session.scenes]

    def get(self, scene_id: str) -> Optional[Scene]:
        scene = self.session.find_scene(scene_id)
        return scene.snapshot() if scene else None

    # ---------- Commands ----------
    def submit_narrative(self, text: str) -> bool:
        if not text or not text.strip():
            self.on_log("ℹ️ Empty narrative ignored")
            return False
        epoch = self.session.reset(text)
        self.on_log(f"📝 Narrative submitted ({len(text)} chars), session {epoch}")
        post = self.session.post
        gateway = self.gateway

        def worker() -> None:
            try:
                result = gateway.decompose(text)
                post(CompletionEvent(kind=DECOMPOSE_DONE, epoch=epoch, payload=result))
            except Exception as e:  # noqa: BLE001
                post(CompletionEvent(kind=DECOMPOSE_ERROR_EVENT, epoch=epoch, error=str(e)))

        self.spawn(worker)
        return True

    def update_prompt(self, scene_id: str, text: str) -> bool:
        scene = self.session.find_scene(scene_id)
        if scene is None:
            return False
        scene.visual_prompt = text
        return True

    def request_image(self, scene_id: str, prompt: Optional[str] = None) -> bool:
        scene = self.session.find_scene(scene_id)
        if scene is None:
            self.on_log(f"⚠️ Scene {scene_id} is not in the current session")
            return False
        if prompt is not None:
            scene.visual_prompt = prompt
        token = self._start_render(scene, scene.visual_prompt)
        self.on_log(f"🎨 Scene {scene_id} render issued (token {token})")
        return True

    # ---------- Completions ----------
    def handles(self, event: CompletionEvent) -> bool:
        return event.kind in (DECOMPOSE_DONE, DECOMPOSE_ERROR_EVENT) or super().handles(event)

    def apply(self, event: CompletionEvent) -> bool:
        if event.kind == DECOMPOSE_DONE:
            return self._apply_decomposition(event)
        if event.kind == DECOMPOSE_ERROR_EVENT:
            return self._apply_decomposition_error(event)
        return self._apply_render(self.session.find_scene(event.entity_id or ""), event)

    def _apply_decomposition(self, event: CompletionEvent) -> bool:
        if not self.session.is_current(event.epoch):
            self.on_log(f"🗑️ Stale decomposition discarded (session {event.epoch})")
            return False
        result = event.payload
        self.session.scenes = scenes_from_drafts(result.scenes)
        self.thumbnails.populate(result.thumbnail_prompt)
        self.session.decomposing = False
        if not self.session.scenes:
            self.session.notice = NO_SCENES_NOTICE
        self.on_log(f"🎬 {len(self.session.scenes)} scenes ready")
        return True

    def _apply_decomposition_error(self, event: CompletionEvent) -> bool:
        if not self.session.is_current(event.epoch):
            self.on_log(f"🗑️ Stale decomposition error discarded (session {event.epoch})")
            return False
        self.session.decomposing = False
        self.session.error = event.error or DECOMPOSE_ERROR
        self.on_log(f"🚨 Narrative processing failed: {self.session.error}")
        return True


class Studio:
    """Wires one session, one gateway and both controllers together.

    Call `drain_events` from the thread that owns the session; it applies
    every queued completion and returns the ids of what changed
    ("session", scene ids, or "thumbnail").
    """

    SESSION = "session"

    def __init__(
        self,
        gateway: GenerationGateway,
        *,
        session: Optional[NarrativeSession] = None,
        spawn: Optional[Spawn] = None,
        on_log: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.session = session or NarrativeSession()
        self.gateway = gateway
        self.thumbnail = ThumbnailController(self.session, gateway, spawn=spawn, on_log=on_log)
        self.scenes = SceneListController(self.session, gateway, self.thumbnail, spawn=spawn, on_log=on_log)

    def submit_narrative(self, text: str) -> bool:
        return self.scenes.submit_narrative(text)

    def drain_events(self) -> List[str]:
        changed: List[str] = []
        for event in self.session.pending_events():
            if self.thumbnail.handles(event):
                applied = self.thumbnail.apply(event)
            else:
                applied = self.scenes.apply(event)
            if not applied:
                continue
            if event.kind in (DECOMPOSE_DONE, DECOMPOSE_ERROR_EVENT):
                key = self.SESSION
            elif event.entity_id == THUMBNAIL_ID:
                key = THUMBNAIL_ID
            else:
                key = event.entity_id or self.SESSION
            if key not in changed:
                changed.append(key)
        return changed
