from __future__ import annotations

import json
import re
from typing import Any, Callable, Dict, List, Optional

from openai import OpenAI

from narrative_studio.config import StudioConfig
from narrative_studio.errors import DecompositionFailure
from narrative_studio.services.openrouter_http import create_chat_completion, message_text
from narrative_studio.types import DecompositionResult, SceneDraft

DECOMPOSE_SYSTEM_PROMPT = (
    "You are an expert Visual Prompt Engineer specialised in Indonesian storytelling. Analyse the narrative "
    "provided by the user and produce consistent image prompts plus ONE clickbait thumbnail prompt.\n\n"
    "GLOBAL CONTEXT:\n"
    "1. SETTING: the story takes place in INDONESIA.\n"
    "2. CHARACTERS: describe characters visually as Indonesian / Southeast Asian.\n"
    "3. STYLE: realistic, natural, high-quality photography (NOT cinematic).\n\n"
    "SOCIAL STATUS & APPEARANCE (apply strictly, judged from the narrative):\n"
    "- Poor / working class: modest and dignified, not beggars. Sun-tanned skin, work sweat, tired eyes. "
    "Faded t-shirt, worn jeans, cheap shirt, rubber sandals; clean but old clothes. Profession uniforms where the "
    "narrative names one (green ojol jacket and helmet, blue or white security uniform, orange street sweeper vest, "
    "trader apron with a towel around the neck). Home: small rented masonry unit (rumah petak / kontrakan), painted "
    "walls slightly peeling, ventilation blocks above doors, cement or cheap ceramic floor, motorcycle parked "
    "inside, narrow alley (gang).\n"
    "- Rich: polished and groomed, luxury designer clothing, gold jewelry, luxury watches. Home: mansion or "
    "penthouse with marble floors, high ceilings, modern furniture, bright lighting, manicured garden.\n"
    "- Middle class: neat casual clothes (jeans, polo, t-shirt). Home: tidy standard housing complex (perumahan).\n\n"
    "CORE INSTRUCTIONS:\n"
    "1. Define each character's visual traits first.\n"
    "2. Repeat the FULL visual description of every character in EVERY scene prompt. Never write 'he', 'she' or "
    "'the man'; each prompt must be renderable on its own.\n"
    "3. Strictly sentence by sentence: one scene per sentence of the narrative, in order, never summarising "
    "paragraphs. 'original_text' is the exact sentence.\n\n"
    "THUMBNAIL:\n"
    "- Write a short punchy clickbait text in Indonesian (max 4 words, all caps), e.g. 'TERUNGKAP!', "
    "'DIA SELINGKUH?!', 'AZAB PEDIH!', 'KAYA MENDADAK!'.\n"
    "- Visual style: YouTube thumbnail style, extreme close-up, hyper-expressive face (shocked, crying or angry), "
    "high contrast, oversaturated colours, dramatic or blurred background.\n"
    "- Include this instruction verbatim with your text: \"Large, bold, glowing yellow or white text overlay in the "
    "CENTER of the image saying '<CLICKBAIT TEXT>'\".\n"
    "- Use exactly the same character descriptions as the scenes.\n\n"
    "PROMPT KEYWORDS:\n"
    "- Use: realistic photo, natural lighting, raw photo, candid, 4k, highly detailed, authentic, Indonesian "
    "street photography, tropical daylight.\n"
    "- Avoid: cinematic, movie scene, dramatic lighting, film grain.\n"
    "- Add Indonesian details where they fit: motor bebek, humid air, tropical plants, chipped wall paint, "
    "ceramic tile floors.\n\n"
    "Output strictly one JSON object, no additional text."
)

DECOMPOSITION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "thumbnail_prompt": {
            "type": "string",
            "description": "High-impact clickbait YouTube thumbnail prompt with a central text overlay instruction.",
        },
        "scenes": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "original_text": {"type": "string", "description": "The exact sentence from the narrative."},
                    "visual_prompt": {"type": "string", "description": "Detailed visual prompt for this sentence."},
                },
                "required": ["original_text", "visual_prompt"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["thumbnail_prompt", "scenes"],
    "additionalProperties": False,
}

_FENCE_RE = re.compile(r"^```(?:json)?\s*\n(.*)\n```$", re.DOTALL | re.IGNORECASE)


def build_decompose_messages(narrative: str) -> List[dict]:
    return [
        {"role": "system", "content": DECOMPOSE_SYSTEM_PROMPT},
        {"role": "user", "content": narrative},
    ]


def _require_str(obj: Dict[str, Any], key: str, where: str) -> str:
    value = obj.get(key)
    if not isinstance(value, str):
        raise DecompositionFailure(f"{where}: '{key}' must be a string")
    return value


def parse_decomposition(text: str) -> DecompositionResult:
    """Validate the model's JSON answer and turn it into a DecompositionResult.

    Only the JSON document itself is accepted; surrounding whitespace and a
    single markdown code fence are tolerated. Anything else raises
    DecompositionFailure.
    """
    raw = (text or "").strip()
    if not raw:
        raise DecompositionFailure("Model returned an empty response")
    fenced = _FENCE_RE.match(raw)
    if fenced:
        raw = fenced.group(1).strip()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise DecompositionFailure(f"Model response is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise DecompositionFailure("Model response must be a JSON object")
    thumbnail_prompt = _require_str(data, "thumbnail_prompt", "response").strip()
    if not thumbnail_prompt:
        raise DecompositionFailure("response: 'thumbnail_prompt' is empty")
    items = data.get("scenes")
    if not isinstance(items, list):
        raise DecompositionFailure("response: 'scenes' must be an array")

    scenes: List[SceneDraft] = []
    for i, item in enumerate(items):
        where = f"scenes[{i}]"
        if not isinstance(item, dict):
            raise DecompositionFailure(f"{where} must be an object")
        original_text = _require_str(item, "original_text", where)
        visual_prompt = _require_str(item, "visual_prompt", where)
        if not visual_prompt.strip():
            raise DecompositionFailure(f"{where}: 'visual_prompt' is empty")
        scenes.append(SceneDraft(original_text=original_text, visual_prompt=visual_prompt))
    return DecompositionResult(thumbnail_prompt=thumbnail_prompt, scenes=scenes)


def fetch_decomposition(
    client: Optional[OpenAI],
    cfg: StudioConfig,
    narrative: str,
    on_log: Optional[Callable[[str], None]] = None,
) -> DecompositionResult:
    messages = build_decompose_messages(narrative)
    extra_body = {
        "response_format": {
            "type": "json_schema",
            "json_schema": {"name": "narrative_decomposition", "strict": True, "schema": DECOMPOSITION_SCHEMA},
        },
    }
    if on_log:
        on_log(f"Decompose: calling {cfg.decompose_model} ({len(narrative)} chars, timeout {cfg.request_timeout_sec}s)…")
    try:
        resp = create_chat_completion(
            client,
            cfg,
            model=cfg.decompose_model,
            messages=messages,
            extra_body=extra_body,
        )
    except Exception as e:  # noqa: BLE001
        raise DecompositionFailure(f"Decomposition request failed: {e}") from e
    text = message_text(resp)
    if on_log:
        on_log(f"Decompose: received {len(text)} characters")
    return parse_decomposition(text)
