from __future__ import annotations

from typing import Callable, Optional

from narrative_studio.config import StudioConfig, create_openrouter_client, load_config
from narrative_studio.errors import DecompositionFailure, GenerationFailure, RenderFailure
from narrative_studio.services.decompose import fetch_decomposition
from narrative_studio.services.images import render_image
from narrative_studio.types import DecompositionResult


class GenerationGateway:
    """Thin facade over the generation service functions.

    Responsibilities:
    - Own `cfg` and OpenAI client lifecycle
    - Expose exactly two calls: decompose a narrative and render one prompt
    - Centralize logging through an injected callback

    Every call is a single attempt; failures surface as GenerationFailure
    subclasses and the caller decides what to do with them.
    """

    def __init__(self, cfg: Optional[StudioConfig] = None, on_log: Optional[Callable[[str], None]] = None) -> None:
        self.on_log: Callable[[str], None] = on_log or (lambda _msg: None)
        self.cfg: StudioConfig = cfg or load_config()
        self.on_log(
            f"📋 Loaded configuration: decompose_model={self.cfg.decompose_model}, "
            f"image_model={self.cfg.image_model}, transport={self.cfg.transport}"
        )
        self.client = self._make_client()

    def _make_client(self):
        if not self.cfg.openrouter_api_key:
            self.on_log("⚠️  OpenRouter client not initialized (no API key)")
            return None
        client = create_openrouter_client(self.cfg)
        self.on_log("🔗 OpenRouter client initialized successfully")
        return client

    def set_logger(self, on_log: Optional[Callable[[str], None]]) -> None:
        self.on_log = on_log or (lambda _msg: None)

    def reload_config(self, cfg: StudioConfig) -> None:
        self.on_log("🔄 Reloading gateway configuration...")
        self.cfg = cfg
        self.client = self._make_client()
        self.on_log("✅ Configuration reload complete")

    def decompose(self, narrative: str) -> DecompositionResult:
        self.on_log(f"🧠 Decomposing narrative ({len(narrative)} chars)...")
        try:
            result = fetch_decomposition(self.client, self.cfg, narrative, on_log=self.on_log)
        except GenerationFailure as e:
            self.on_log(f"❌ Decomposition failed: {e}")
            raise
        except Exception as e:
            self.on_log(f"❌ Decomposition failed: {e}")
            raise DecompositionFailure(str(e) or type(e).__name__) from e
        self.on_log(f"✅ Decomposition complete ({len(result.scenes)} scenes + thumbnail)")
        return result

    def render(self, prompt: str) -> str:
        preview = prompt[:50] + "..." if len(prompt) > 50 else prompt
        self.on_log(f"🎨 Rendering image for prompt: '{preview}'")
        try:
            data_url = render_image(self.client, self.cfg, prompt, on_log=self.on_log)
        except GenerationFailure as e:
            self.on_log(f"❌ Image generation failed: {e}")
            raise
        except Exception as e:
            self.on_log(f"❌ Image generation failed: {e}")
            raise RenderFailure(str(e) or type(e).__name__) from e
        self.on_log("✅ Image generation completed successfully")
        return data_url
