from __future__ import annotations

from typing import Any, Dict, Optional

import requests
from openai import OpenAI

from narrative_studio.config import OPENROUTER_BASE_URL, StudioConfig, attribution_headers


def chat_completions(
    *,
    api_key: str,
    model: str,
    messages: list,
    timeout_sec: int,
    extra_body: Optional[Dict[str, Any]] = None,
    extra_headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Call OpenRouter /chat/completions via requests.

    Returns parsed JSON dict. Raises requests.HTTPError on non-2xx.
    """
    headers: Dict[str, str] = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    if extra_headers:
        headers.update(extra_headers)

    payload: Dict[str, Any] = {
        "model": model,
        "messages": messages,
    }
    if extra_body:
        # Extra parameters never replace model or messages
        for k, v in extra_body.items():
            if k not in ("model", "messages"):
                payload[k] = v

    resp = requests.post(
        f"{OPENROUTER_BASE_URL}/chat/completions",
        headers=headers,
        json=payload,
        timeout=timeout_sec,
    )
    resp.raise_for_status()
    return resp.json()


def message_text(resp: Any) -> str:
    """First choice's text content from an SDK object or an HTTP JSON dict."""
    if resp is None:
        return ""
    if hasattr(resp, "model_dump"):
        resp = resp.model_dump()
    if not isinstance(resp, dict):
        return ""
    choices = resp.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    if isinstance(content, list):
        # Content parts: keep only the text pieces
        parts = []
        for item in content:
            if isinstance(item, dict) and item.get("type") == "text":
                parts.append(str(item.get("text") or ""))
        return "".join(parts)
    return content if isinstance(content, str) else ""


def create_chat_completion(
    client: Optional[OpenAI],
    cfg: StudioConfig,
    *,
    model: str,
    messages: list,
    extra_body: Optional[Dict[str, Any]] = None,
) -> Any:
    """Single attempt on the configured transport; errors propagate."""
    headers = attribution_headers(cfg)
    if cfg.transport == "http" or client is None:
        return chat_completions(
            api_key=cfg.openrouter_api_key,
            model=model,
            messages=messages,
            timeout_sec=cfg.request_timeout_sec,
            extra_body=extra_body,
            extra_headers=headers,
        )
    return client.chat.completions.create(
        model=model,
        messages=messages,
        extra_headers=headers,
        extra_body=extra_body or {},
        stream=False,
        timeout=cfg.request_timeout_sec,
    )
