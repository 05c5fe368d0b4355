from __future__ import annotations

from typing import Any, Callable, List, Optional

import requests
from openai import OpenAI

from narrative_studio.config import StudioConfig
from narrative_studio.errors import RenderFailure
from narrative_studio.services.openrouter_http import create_chat_completion, message_text
from narrative_studio.services.storage import bytes_to_data_url


def build_image_messages(prompt: str) -> List[dict]:
    return [{"role": "user", "content": [{"type": "text", "text": prompt}]}]


def _download_as_data_url(url: str) -> Optional[str]:
    try:
        r = requests.get(url, timeout=30)
        r.raise_for_status()
    except requests.RequestException:
        return None
    mime = (r.headers.get("content-type") or "image/png").split(";")[0].strip().lower()
    if not mime.startswith("image/"):
        return None
    return bytes_to_data_url(r.content, mime=mime)


def _resolve_image_ref(ref: Any) -> Optional[str]:
    if not isinstance(ref, str):
        return None
    if ref.startswith("data:image/"):
        return ref
    if ref.startswith("http://") or ref.startswith("https://"):
        return _download_as_data_url(ref)
    if "data:image/" in ref:
        # Data URL embedded in prose or markdown
        s = ref.find("data:image/")
        e = len(ref)
        for sep in ["\n", " ", ")", "]", '"', "'"]:
            ix = ref.find(sep, s)
            if ix != -1:
                e = min(e, ix)
        return ref[s:e]
    return None


def _find_image_in_obj(obj: Any) -> Optional[str]:
    if isinstance(obj, str):
        return _resolve_image_ref(obj) if "data:image/" in obj else None
    if isinstance(obj, dict):
        if obj.get("type") == "image_url":
            url = obj.get("image_url")
            if isinstance(url, dict):
                url = url.get("url")
            found = _resolve_image_ref(url)
            if found:
                return found
        for v in obj.values():
            found = _find_image_in_obj(v)
            if found:
                return found
    if isinstance(obj, list):
        for it in obj:
            found = _find_image_in_obj(it)
            if found:
                return found
    return None


def extract_image_data_url_from_response(resp: Any) -> Optional[str]:
    """Extract a data URL from either an OpenAI SDK object or an HTTP JSON dict."""
    if hasattr(resp, "model_dump"):
        resp = resp.model_dump()
    if not isinstance(resp, dict):
        return None
    choices = resp.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    msg = choices[0].get("message")
    if not isinstance(msg, dict):
        return None
    # 1) images array (OpenRouter extension)
    images = msg.get("images")
    if isinstance(images, list):
        for img in images:
            url = None
            if isinstance(img, dict):
                url = img.get("image_url")
                if isinstance(url, dict):
                    url = url.get("url")
            found = _resolve_image_ref(url)
            if found:
                return found
    # 2) content parts or a plain content string
    content = msg.get("content")
    if isinstance(content, str):
        return _resolve_image_ref(content.strip())
    return _find_image_in_obj(content)


def render_image(
    client: Optional[OpenAI],
    cfg: StudioConfig,
    prompt: str,
    on_log: Optional[Callable[[str], None]] = None,
) -> str:
    if on_log:
        on_log(f"Images: calling {cfg.image_model}…")
    try:
        resp = create_chat_completion(
            client,
            cfg,
            model=cfg.image_model,
            messages=build_image_messages(prompt),
            extra_body={"modalities": ["image", "text"]},
        )
    except Exception as e:  # noqa: BLE001
        raise RenderFailure(f"Image request failed: {e}") from e
    data_url = extract_image_data_url_from_response(resp)
    if not data_url:
        refusal = message_text(resp).strip()
        if refusal:
            raise RenderFailure(f"No image generated: {refusal[:300]}")
        raise RenderFailure("No image generated.")
    if on_log:
        on_log(f"Images: received image data url length={len(data_url)}")
    return data_url
