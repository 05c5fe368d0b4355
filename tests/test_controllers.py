from __future__ import annotations

from narrative_studio.controllers import (
    NO_SCENES_NOTICE,
    SCENE_RENDER_ERROR,
    THUMBNAIL_RENDER_ERROR,
    Studio,
)
from narrative_studio.errors import DecompositionFailure
from narrative_studio.types import THUMBNAIL_ID, CompletionEvent, DecompositionResult, GenerationState, SceneDraft


def _scene_ids(studio: Studio) -> list[str]:
    return [s.id for s in studio.scenes.scenes()]


def test_decomposition_builds_idle_scenes_in_order(loaded_studio):
    scenes = loaded_studio.scenes.scenes()
    assert [s.original_text for s in scenes] == ["Budi berjalan ke pasar.", "Dia membeli apel."]
    assert all(s.state is GenerationState.IDLE for s in scenes)
    assert all(s.image_data_url is None and s.error is None for s in scenes)
    assert len(set(_scene_ids(loaded_studio))) == 2
    assert loaded_studio.session.decomposing is False

    thumb = loaded_studio.thumbnail.snapshot()
    assert thumb is not None
    assert thumb.state is GenerationState.IDLE
    assert "KAYA MENDADAK" in thumb.visual_prompt


def test_submit_sets_decomposing_and_clears_previous_session(loaded_studio, spawner):
    assert loaded_studio.submit_narrative("Cerita baru.") is True
    assert loaded_studio.session.decomposing is True
    assert loaded_studio.scenes.scenes() == []
    assert loaded_studio.thumbnail.snapshot() is None
    assert len(spawner.pending) == 1


def test_blank_submission_is_ignored(loaded_studio, spawner):
    before = _scene_ids(loaded_studio)
    epoch = loaded_studio.session.epoch
    for blank in ("", "   ", "\n\t"):
        assert loaded_studio.submit_narrative(blank) is False
    assert _scene_ids(loaded_studio) == before
    assert loaded_studio.session.epoch == epoch
    assert loaded_studio.session.decomposing is False
    assert spawner.pending == []


def test_decomposition_failure_sets_session_error(studio, gateway, spawner):
    gateway.decompose_error = DecompositionFailure("Model response is not valid JSON")
    studio.submit_narrative("Budi berjalan ke pasar.")
    spawner.run_all()
    assert studio.drain_events() == [Studio.SESSION]
    assert studio.session.error == "Model response is not valid JSON"
    assert studio.session.decomposing is False
    assert studio.scenes.scenes() == []
    assert studio.thumbnail.snapshot() is None


def test_decomposition_error_without_message_uses_default(studio, gateway, spawner):
    gateway.decompose_error = RuntimeError()
    studio.submit_narrative("Budi berjalan ke pasar.")
    spawner.run_all()
    studio.drain_events()
    assert studio.session.error == "Gagal memproses narasi. Pastikan API Key valid."


def test_zero_scenes_is_a_soft_notice(studio, gateway, spawner):
    gateway.result = DecompositionResult(thumbnail_prompt="thumb", scenes=[])
    studio.submit_narrative("Hmm.")
    spawner.run_all()
    studio.drain_events()
    assert studio.session.error is None
    assert studio.session.notice == NO_SCENES_NOTICE
    assert studio.thumbnail.snapshot() is not None


def test_stale_decomposition_is_discarded(studio, gateway, spawner):
    studio.submit_narrative("Pertama.")
    first = spawner.pending[0]
    gateway_second = DecompositionResult(thumbnail_prompt="second", scenes=[SceneDraft("Kedua.", "prompt kedua")])
    studio.submit_narrative("Kedua.")
    gateway.result = gateway_second
    spawner.run(1)
    first()
    studio.drain_events()
    assert [s.original_text for s in studio.scenes.scenes()] == ["Kedua."]


def test_update_prompt_overwrites_without_touching_state(loaded_studio):
    sid = _scene_ids(loaded_studio)[0]
    assert loaded_studio.scenes.update_prompt(sid, "X") is True
    scene = loaded_studio.scenes.get(sid)
    assert scene.visual_prompt == "X"
    assert scene.state is GenerationState.IDLE


def test_update_prompt_unknown_id_is_noop(loaded_studio):
    assert loaded_studio.scenes.update_prompt("missing", "X") is False
    assert loaded_studio.scenes.request_image("missing", "X") is False


def test_request_image_success(loaded_studio, gateway, spawner):
    sid = _scene_ids(loaded_studio)[1]
    gateway.images["..."] = "data:image/png;base64,AAA"
    assert loaded_studio.scenes.request_image(sid, "...") is True
    assert loaded_studio.scenes.get(sid).state is GenerationState.GENERATING
    assert loaded_studio.scenes.get(sid).visual_prompt == "..."

    spawner.run_all()
    assert loaded_studio.drain_events() == [sid]
    scene = loaded_studio.scenes.get(sid)
    assert scene.state is GenerationState.SUCCEEDED
    assert scene.image_data_url == "data:image/png;base64,AAA"
    assert scene.error is None


def test_request_image_failure_clears_previous_image(loaded_studio, gateway, spawner):
    sid = _scene_ids(loaded_studio)[0]
    gateway.images["ok"] = "data:image/png;base64,OK"
    loaded_studio.scenes.request_image(sid, "ok")
    spawner.run_all()
    loaded_studio.drain_events()

    gateway.failing_prompts.add("refused")
    loaded_studio.scenes.request_image(sid, "refused")
    generating = loaded_studio.scenes.get(sid)
    assert generating.state is GenerationState.GENERATING
    assert generating.image_data_url == "data:image/png;base64,OK"

    spawner.run_all()
    loaded_studio.drain_events()
    scene = loaded_studio.scenes.get(sid)
    assert scene.state is GenerationState.FAILED
    assert scene.error == SCENE_RENDER_ERROR
    assert scene.image_data_url is None


def test_retry_after_failure_clears_error(loaded_studio, gateway, spawner):
    sid = _scene_ids(loaded_studio)[0]
    gateway.failing_prompts.add("bad")
    loaded_studio.scenes.request_image(sid, "bad")
    spawner.run_all()
    loaded_studio.drain_events()

    loaded_studio.scenes.request_image(sid, "good")
    assert loaded_studio.scenes.get(sid).error is None
    spawner.run_all()
    loaded_studio.drain_events()
    assert loaded_studio.scenes.get(sid).state is GenerationState.SUCCEEDED


def test_render_after_new_submission_is_discarded(loaded_studio, gateway, spawner):
    old_id = _scene_ids(loaded_studio)[0]
    loaded_studio.scenes.request_image(old_id, "old prompt")
    render_work = spawner.pending.pop()

    gateway.result = DecompositionResult(thumbnail_prompt="t2", scenes=[SceneDraft("Baru.", "prompt baru")])
    loaded_studio.submit_narrative("Baru.")
    spawner.run_all()
    loaded_studio.drain_events()
    new_scenes = loaded_studio.scenes.scenes()

    render_work()
    assert loaded_studio.drain_events() == []
    assert loaded_studio.scenes.scenes() == new_scenes
    assert loaded_studio.scenes.get(old_id) is None
    assert all(s.state is GenerationState.IDLE for s in new_scenes)


def test_failed_render_after_new_submission_is_discarded(loaded_studio, gateway, spawner):
    old_id = _scene_ids(loaded_studio)[0]
    gateway.failing_prompts.add("doomed")
    loaded_studio.scenes.request_image(old_id, "doomed")
    render_work = spawner.pending.pop()

    loaded_studio.submit_narrative("Budi berjalan ke pasar. Dia membeli apel.")
    spawner.run_all()
    loaded_studio.drain_events()

    render_work()
    loaded_studio.drain_events()
    assert all(s.error is None for s in loaded_studio.scenes.scenes())


def test_last_issued_render_wins(loaded_studio, gateway, spawner):
    sid = _scene_ids(loaded_studio)[0]
    gateway.images.update({"p1": "data:image/png;base64,IMG1", "p2": "data:image/png;base64,IMG2"})

    loaded_studio.scenes.request_image(sid, "p1")
    loaded_studio.scenes.request_image(sid, "p2")
    assert loaded_studio.scenes.get(sid).request_token == 2

    # token-1 call resolves first and must be ignored
    spawner.run(0)
    assert loaded_studio.drain_events() == []
    assert loaded_studio.scenes.get(sid).state is GenerationState.GENERATING

    spawner.run(0)
    loaded_studio.drain_events()
    assert loaded_studio.scenes.get(sid).image_data_url == "data:image/png;base64,IMG2"


def test_older_render_resolving_last_does_not_overwrite(loaded_studio, gateway, spawner):
    sid = _scene_ids(loaded_studio)[0]
    gateway.images.update({"p1": "data:image/png;base64,IMG1", "p2": "data:image/png;base64,IMG2"})
    loaded_studio.scenes.request_image(sid, "p1")
    loaded_studio.scenes.request_image(sid, "p2")

    spawner.run(1)
    spawner.run(0)
    loaded_studio.drain_events()
    scene = loaded_studio.scenes.get(sid)
    assert scene.state is GenerationState.SUCCEEDED
    assert scene.image_data_url == "data:image/png;base64,IMG2"


def test_stale_token_event_after_success_is_discarded(loaded_studio, gateway, spawner):
    sid = _scene_ids(loaded_studio)[0]
    gateway.images["p1"] = "data:image/png;base64,IMG1"
    loaded_studio.scenes.request_image(sid, "p1")
    spawner.run_all()
    loaded_studio.drain_events()

    loaded_studio.scenes.request_image(sid, "p2")
    loaded_studio.session.post(
        CompletionEvent(
            kind="scene_render_done",
            epoch=loaded_studio.session.epoch,
            entity_id=sid,
            token=1,
            payload="data:image/png;base64,LATE",
        )
    )
    loaded_studio.drain_events()
    scene = loaded_studio.scenes.get(sid)
    assert scene.state is GenerationState.GENERATING
    assert scene.image_data_url == "data:image/png;base64,IMG1"


def test_out_of_order_completion_only_touches_its_scene(loaded_studio, spawner):
    a, b = _scene_ids(loaded_studio)
    loaded_studio.scenes.request_image(a, "prompt a")
    loaded_studio.scenes.request_image(b, "prompt b")

    spawner.run(1)
    assert loaded_studio.drain_events() == [b]
    assert loaded_studio.scenes.get(b).state is GenerationState.SUCCEEDED
    assert loaded_studio.scenes.get(a).state is GenerationState.GENERATING


def test_edit_while_generating_keeps_edit(loaded_studio, spawner):
    sid = _scene_ids(loaded_studio)[0]
    loaded_studio.scenes.request_image(sid, "sent")
    loaded_studio.scenes.update_prompt(sid, "edited meanwhile")
    spawner.run_all()
    loaded_studio.drain_events()
    scene = loaded_studio.scenes.get(sid)
    assert scene.visual_prompt == "edited meanwhile"
    assert scene.state is GenerationState.SUCCEEDED


def test_snapshots_are_detached(loaded_studio):
    sid = _scene_ids(loaded_studio)[0]
    snap = loaded_studio.scenes.get(sid)
    snap.visual_prompt = "mutated copy"
    assert loaded_studio.scenes.get(sid).visual_prompt != "mutated copy"


def test_thumbnail_lifecycle(loaded_studio, gateway, spawner):
    gateway.images["thumb"] = "data:image/png;base64,THUMB"
    assert loaded_studio.thumbnail.request_image("thumb") is True
    assert loaded_studio.thumbnail.snapshot().state is GenerationState.GENERATING
    spawner.run_all()
    assert loaded_studio.drain_events() == [THUMBNAIL_ID]
    thumb = loaded_studio.thumbnail.snapshot()
    assert thumb.state is GenerationState.SUCCEEDED
    assert thumb.image_data_url == "data:image/png;base64,THUMB"

    gateway.failing_prompts.add("nope")
    loaded_studio.thumbnail.request_image("nope")
    spawner.run_all()
    loaded_studio.drain_events()
    thumb = loaded_studio.thumbnail.snapshot()
    assert thumb.state is GenerationState.FAILED
    assert thumb.error == THUMBNAIL_RENDER_ERROR
    assert thumb.image_data_url is None


def test_thumbnail_update_prompt(loaded_studio):
    assert loaded_studio.thumbnail.update_prompt("new thumb") is True
    assert loaded_studio.thumbnail.snapshot().visual_prompt == "new thumb"


def test_thumbnail_without_session_is_noop(studio):
    assert studio.thumbnail.request_image("x") is False
    assert studio.thumbnail.update_prompt("x") is False


def test_thumbnail_render_from_old_session_is_discarded(loaded_studio, spawner):
    loaded_studio.thumbnail.request_image("old thumb")
    render_work = spawner.pending.pop()
    loaded_studio.submit_narrative("Budi berjalan ke pasar. Dia membeli apel.")
    spawner.run_all()
    loaded_studio.drain_events()

    render_work()
    loaded_studio.drain_events()
    assert loaded_studio.thumbnail.snapshot().state is GenerationState.IDLE


def test_scene_and_thumbnail_render_independently(loaded_studio, spawner):
    sid = _scene_ids(loaded_studio)[0]
    loaded_studio.scenes.request_image(sid, "scene")
    loaded_studio.thumbnail.request_image("thumb")
    spawner.run(1)
    loaded_studio.drain_events()
    assert loaded_studio.thumbnail.snapshot().state is GenerationState.SUCCEEDED
    assert loaded_studio.scenes.get(sid).state is GenerationState.GENERATING


def test_end_to_end_budi_example(studio, gateway, spawner):
    studio.submit_narrative("Budi berjalan ke pasar. Dia membeli apel.")
    spawner.run_all()
    studio.drain_events()
    scenes = studio.scenes.scenes()
    assert len(scenes) == 2
    assert scenes[0].original_text == "Budi berjalan ke pasar."
    assert scenes[1].original_text == "Dia membeli apel."
    assert all(s.visual_prompt for s in scenes)

    gateway.images["..."] = "data:image/png;base64,AAA"
    studio.scenes.request_image(scenes[1].id, "...")
    spawner.run_all()
    studio.drain_events()
    second = studio.scenes.get(scenes[1].id)
    assert second.state is GenerationState.SUCCEEDED
    assert second.image_data_url == "data:image/png;base64,AAA"
    assert studio.scenes.get(scenes[0].id).state is GenerationState.IDLE


def test_real_threads_complete_through_the_queue(gateway):
    import time

    studio = Studio(gateway)  # type: ignore[arg-type]
    studio.submit_narrative("Budi berjalan ke pasar. Dia membeli apel.")
    deadline = time.time() + 5
    while studio.session.decomposing and time.time() < deadline:
        studio.drain_events()
        time.sleep(0.01)
    assert len(studio.scenes.scenes()) == 2
