"""Image attachments: `@path.png` references become image content parts."""

import base64
import re
from pathlib import Path
from typing import Any

from tenx.logging import get_logger

log = get_logger(__name__)

MIME_TYPES: dict[str, str] = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
}

IMAGE_REFERENCE = re.compile(r"@([\w./\-]+\.(?:png|jpg|jpeg|gif|webp|bmp))", re.IGNORECASE)

VISION_MODEL_PREFIXES: tuple[str, ...] = (
    "google/gemini",
    "anthropic/claude-3",
    "anthropic/claude-opus-4",
    "anthropic/claude-sonnet-4",
    "openai/gpt-4o",
    "openai/gpt-4-vision",
)


def is_image_file(path: str | Path) -> bool:
    return Path(path).suffix.lower() in MIME_TYPES


def image_to_data_url(path: str | Path) -> str:
    """Read an image file into a base64 data URL.

    Raises:
        FileNotFoundError: the file does not exist
        ValueError: the extension is not a supported image format
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Image file not found: {path}")
    mime_type = MIME_TYPES.get(path.suffix.lower())
    if mime_type is None:
        raise ValueError(f"Unsupported image format: {path.suffix}")
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def text_part(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}


def image_part(path: str | Path) -> dict[str, Any]:
    return {"type": "image_url", "image_url": {"url": image_to_data_url(path)}}


def parse_message_with_images(
    message: str,
    working_dir: str | Path | None = None,
) -> tuple[str | list[dict[str, Any]], bool]:
    """Split a user message into text and image parts.

    Returns `(content, has_images)`. Without any image reference the message
    is returned unchanged. A reference that cannot be loaded stays as text.
    """
    matches = list(IMAGE_REFERENCE.finditer(message))
    if not matches:
        return message, False

    base = Path(working_dir) if working_dir is not None else Path.cwd()
    parts: list[dict[str, Any]] = []
    last_index = 0

    for match in matches:
        before = message[last_index:match.start()].strip()
        if before:
            parts.append(text_part(before))

        reference = match.group(1)
        path = Path(reference)
        if not path.is_absolute():
            path = base / path
        try:
            parts.append(image_part(path))
        except (OSError, ValueError) as e:
            log.warning("Image attachment not loaded", path=str(path), error=str(e))
            parts.append(text_part(match.group(0)))

        last_index = match.end()

    after = message[last_index:].strip()
    if after:
        parts.append(text_part(after))

    return parts, True


def supports_vision(model: str) -> bool:
    return any(prefix in model for prefix in VISION_MODEL_PREFIXES)
