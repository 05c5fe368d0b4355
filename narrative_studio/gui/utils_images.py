from __future__ import annotations

import io
from typing import Tuple

from PIL import Image
import customtkinter as ctk

from narrative_studio.services.storage import data_url_to_bytes_and_mime


def data_url_to_pil_image(data_url: str) -> Image.Image:
    raw, _mime = data_url_to_bytes_and_mime((data_url or "").strip())
    img = Image.open(io.BytesIO(raw))
    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA")
    return img


def fit_size(width: int, height: int, max_size: Tuple[int, int]) -> Tuple[int, int]:
    max_w, max_h = max_size
    scale = min(max_w / width, max_h / height, 1.0)
    return max(1, int(width * scale)), max(1, int(height * scale))


def data_url_to_ctkimage(data_url: str, max_size: Tuple[int, int]) -> ctk.CTkImage:
    img = data_url_to_pil_image(data_url)
    w, h = fit_size(img.width, img.height, max_size)
    # Same image for light/dark; CTk handles scaling for HiDPI
    return ctk.CTkImage(light_image=img, dark_image=img, size=(w, h))
