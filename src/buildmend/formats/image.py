"""PNG icon artifacts measured and regenerated with Pillow."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Any

from PIL import Image, ImageDraw, UnidentifiedImageError

from ..artifacts import Artifact, ArtifactFormat, KeyPath
from ..errors import SyntaxCorruption
from .base import MISSING, FormatPlugin

logger = logging.getLogger("buildmend.formats.image")

PROPERTIES = ("size", "alpha", "format")
_ALPHA_MODES = {"RGBA", "LA", "PA", "RGBa", "La"}
DEFAULT_BACKGROUND = "#FFFFFF"


@dataclass
class Picture:
    image: Image.Image
    format: str
    background: str = DEFAULT_BACKGROUND


def parse_size(text: str) -> tuple[int, int]:
    """``"1024x1024"`` -> ``(1024, 1024)``."""
    try:
        width, height = (int(part) for part in str(text).lower().split("x"))
    except ValueError as e:
        raise ValueError(f"Invalid image size: {text!r}") from e
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid image size: {text!r}")
    return width, height


def has_alpha(image: Image.Image) -> bool:
    if image.mode in _ALPHA_MODES:
        return True
    return image.mode == "P" and "transparency" in image.info


def flatten(image: Image.Image, background: str = DEFAULT_BACKGROUND) -> Image.Image:
    """Composite ``image`` onto an opaque background and drop the alpha channel."""
    rgba = image.convert("RGBA")
    base = Image.new("RGB", rgba.size, background)
    base.paste(rgba, mask=rgba.getchannel("A"))
    return base


def placeholder(size: int = 1024, background: str = "#2196F3", foreground: str = "#FFFFFF") -> bytes:
    """Opaque square PNG used when no logo could be acquired."""
    image = Image.new("RGB", (size, size), background)
    draw = ImageDraw.Draw(image)
    inset = size // 4
    draw.ellipse((inset, inset, size - inset, size - inset), fill=foreground)
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


class ImageFormat(FormatPlugin):
    """Raster icons.

    KeyPaths name derived properties (``size``, ``alpha``, ``format``)
    that are always measured from the pixels. Assigning a property
    transforms the picture; any mismatch on disk triggers a full
    regeneration from the source logo.
    """

    format = ArtifactFormat.IMAGE
    incremental = False

    def parse(self, data: bytes, artifact: Artifact) -> Picture:
        if not data:
            raise SyntaxCorruption(artifact.path, "empty file")
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
            raise SyntaxCorruption(artifact.path, str(e) or type(e).__name__) from e
        background = artifact.options.get("background", DEFAULT_BACKGROUND)
        return Picture(image=image, format=image.format or "", background=background)

    def serialize(self, model: Picture, artifact: Artifact) -> bytes:
        buf = io.BytesIO()
        model.image.save(buf, format=model.format or "PNG")
        return buf.getvalue()

    def validate_path(self, path: KeyPath) -> None:
        super().validate_path(path)
        if path.text not in PROPERTIES:
            raise ValueError(f"Unknown image property {path.text!r}; expected one of {PROPERTIES}")

    def resolve(self, model: Picture, path: KeyPath) -> Any:
        if path.text == "size":
            width, height = model.image.size
            return f"{width}x{height}"
        if path.text == "alpha":
            return has_alpha(model.image)
        if path.text == "format":
            return model.format or MISSING
        return MISSING

    def assign(self, model: Picture, path: KeyPath, value: Any) -> None:
        if path.text == "size":
            target = parse_size(value)
            if model.image.size != target:
                logger.debug("Resizing %s -> %s", model.image.size, target)
                source = model.image
                if source.mode not in ("RGB", "RGBA", "L", "LA"):
                    source = source.convert("RGBA" if has_alpha(source) else "RGB")
                model.image = source.resize(target, Image.Resampling.LANCZOS)
        elif path.text == "alpha":
            if value:
                model.image = model.image.convert("RGBA")
            elif has_alpha(model.image):
                model.image = flatten(model.image, model.background)
            elif model.image.mode not in ("RGB", "L"):
                model.image = model.image.convert("RGB")
        elif path.text == "format":
            model.format = str(value).upper()
        else:
            raise ValueError(f"Unknown image property {path.text!r}")

