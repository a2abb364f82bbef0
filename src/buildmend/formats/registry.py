"""Format registry – resolve the right plugin for an artifact format."""

from __future__ import annotations

from ..artifacts import ArtifactFormat
from .base import FormatPlugin
from .dart import DartFormat
from .image import ImageFormat
from .json_doc import JsonFormat
from .manifest import ManifestFormat, ResourceFormat
from .plist import PlistFormat

_FORMATS: dict[ArtifactFormat, FormatPlugin] = {
    ArtifactFormat.PLIST: PlistFormat(),
    ArtifactFormat.JSON: JsonFormat(),
    ArtifactFormat.ANDROID_MANIFEST: ManifestFormat(),
    ArtifactFormat.ANDROID_RESOURCE: ResourceFormat(),
    ArtifactFormat.GENERATED_SOURCE: DartFormat(),
    ArtifactFormat.IMAGE: ImageFormat(),
}


def get_format(fmt: ArtifactFormat | str) -> FormatPlugin:
    """Return the plugin instance for the given artifact format."""
    plugin = _FORMATS.get(ArtifactFormat(fmt))
    if plugin is None:
        raise ValueError(f"No format plugin registered for: {fmt}")
    return plugin
