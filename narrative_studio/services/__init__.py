from typing import Tuple

import requests

from narrative_studio.config import OPENROUTER_BASE_URL


def connectivity_probe(url: str = OPENROUTER_BASE_URL, timeout_sec: int = 5) -> Tuple[bool, str]:
    try:
        resp = requests.get(url, timeout=timeout_sec)
        return (resp.ok, f"HTTP {resp.status_code}")
    except Exception as e:  # noqa: BLE001
        return (False, str(e))


def openrouter_models_probe(api_key: str, timeout_sec: int = 8) -> Tuple[bool, str]:
    try:
        resp = requests.get(
            f"{OPENROUTER_BASE_URL}/models",
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout_sec,
        )
        if resp.ok:
            return True, f"HTTP {resp.status_code}, {len(resp.json().get('data', []))} models"
        return False, f"HTTP {resp.status_code}: {resp.text[:200]}"
    except Exception as e:  # noqa: BLE001
        return False, str(e)


def openrouter_chat_probe(api_key: str, model: str, timeout_sec: int = 12) -> Tuple[bool, str]:
    try:
        payload = {
            "model": model,
            "messages": [{"role": "user", "content": [{"type": "text", "text": "ping"}]}],
        }
        resp = requests.post(
            f"{OPENROUTER_BASE_URL}/chat/completions",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            json=payload,
            timeout=timeout_sec,
        )
        if resp.ok:
            return True, f"HTTP {resp.status_code}"
        return False, f"HTTP {resp.status_code}: {resp.text[:200]}"
    except Exception as e:  # noqa: BLE001
        return False, str(e)
