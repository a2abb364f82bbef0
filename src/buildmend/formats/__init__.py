"""Format plugins for every artifact kind (plist, json, Android XML, dart, image)."""

from .base import MISSING, FormatPlugin
from .dart import DartFormat
from .image import ImageFormat
from .json_doc import JsonFormat
from .manifest import ManifestFormat, ResourceFormat
from .plist import PlistFormat
from .registry import get_format

__all__ = [
    "MISSING",
    "FormatPlugin",
    "DartFormat",
    "ImageFormat",
    "JsonFormat",
    "ManifestFormat",
    "PlistFormat",
    "ResourceFormat",
    "get_format",
]
