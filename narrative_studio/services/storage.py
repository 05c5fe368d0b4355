import base64
import os
from typing import Tuple

_MIME_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
}


def bytes_to_data_url(data: bytes, mime: str = "image/png") -> str:
    b64 = base64.b64encode(data).decode("ascii")
    return f"data:{mime};base64,{b64}"


def data_url_to_bytes_and_mime(data_url: str) -> Tuple[bytes, str]:
    """
    Convert a data URL (data:<mime>;base64,...) to raw bytes and mime type.
    """
    if not isinstance(data_url, str) or not data_url.startswith("data:") or "," not in data_url:
        raise ValueError("Invalid data URL")
    header, b64 = data_url.split(",", 1)
    mime = "image/png"
    meta = header[len("data:"):]
    if ";" in meta:
        mime = meta[: meta.index(";")] or mime
    elif meta:
        mime = meta
    if not header.endswith(";base64"):
        raise ValueError("Only base64 data URLs are supported")
    return base64.b64decode(b64), mime


def extension_for_mime(mime: str) -> str:
    return _MIME_EXTENSIONS.get((mime or "").lower(), ".png")


def default_filename(data_url: str, stem: str) -> str:
    _, mime = data_url_to_bytes_and_mime(data_url)
    return f"{stem}{extension_for_mime(mime)}"


def save_data_url_to_path(data_url: str, path: str) -> int:
    """
    Write the decoded bytes of a data URL to `path` unchanged.
    Creates the parent directory if needed and returns the byte count.
    """
    data, _mime = data_url_to_bytes_and_mime(data_url)
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "wb") as f:
        f.write(data)
    return len(data)
