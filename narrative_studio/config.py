import os
from dataclasses import dataclass
from typing import Optional, Dict

from openai import OpenAI

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


def _get_env(key: str, default: str = "") -> str:
    return str(os.getenv(key, default))


@dataclass(frozen=True)
class StudioConfig:
    openrouter_api_key: str
    decompose_model: str
    image_model: str
    request_timeout_sec: int
    # "sdk" uses the OpenAI client, "http" posts with requests
    transport: str = "sdk"
    http_referer: str = "http://localhost"
    app_title: str = "Visual Narrative Studio"


def load_config() -> StudioConfig:
    transport = _get_env("NARRATIVE_TRANSPORT", "sdk").strip().lower()
    if transport not in ("sdk", "http"):
        transport = "sdk"
    try:
        timeout_sec = int(_get_env("NARRATIVE_REQUEST_TIMEOUT_SEC", "90"))
    except ValueError:
        timeout_sec = 90

    return StudioConfig(
        openrouter_api_key=_get_env("OPENROUTER_API_KEY", ""),
        decompose_model=_get_env("NARRATIVE_DECOMPOSE_MODEL") or "google/gemini-2.5-flash",
        image_model=_get_env("NARRATIVE_IMAGE_MODEL") or "google/gemini-2.5-flash-image-preview",
        request_timeout_sec=timeout_sec,
        transport=transport,
        http_referer=_get_env("NARRATIVE_HTTP_REFERER", "http://localhost"),
        app_title=_get_env("NARRATIVE_APP_TITLE", "Visual Narrative Studio"),
    )


def attribution_headers(cfg: StudioConfig) -> Dict[str, str]:
    # OpenRouter recommends sending HTTP-Referer and X-Title
    return {
        "HTTP-Referer": cfg.http_referer,
        "X-Title": cfg.app_title,
    }


def create_openrouter_client(cfg: StudioConfig, api_key: Optional[str] = None) -> OpenAI:
    key = api_key or cfg.openrouter_api_key
    return OpenAI(
        api_key=key,
        base_url=OPENROUTER_BASE_URL,
        default_headers=attribution_headers(cfg),
    )
