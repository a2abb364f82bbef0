"""Property list artifacts (Info.plist, entitlements, GoogleService-Info.plist)."""

from __future__ import annotations

import logging
import plistlib
from typing import Any

from ..artifacts import Artifact, ArtifactFormat, KeyPath
from ..errors import SyntaxCorruption
from .base import MISSING, FormatPlugin

logger = logging.getLogger("buildmend.formats.plist")

_EMPTY_PLIST = plistlib.dumps({}, fmt=plistlib.FMT_XML, sort_keys=False)


def split_plist_path(text: str) -> list[str]:
    """Split a PlistBuddy style path (``A:B:0``) into its segments."""
    parts = text.split(":")
    if not text or any(not p for p in parts):
        raise ValueError(f"Invalid plist key path: {text!r}")
    return parts


class PlistFormat(FormatPlugin):
    """XML property lists, serialized exactly the way Xcode writes them."""

    format = ArtifactFormat.PLIST

    def parse(self, data: bytes, artifact: Artifact) -> dict:
        if not data.strip():
            raise SyntaxCorruption(artifact.path, "empty file")
        try:
            model = plistlib.loads(data)
        except Exception as e:
            raise SyntaxCorruption(artifact.path, str(e) or type(e).__name__) from e
        if not isinstance(model, dict):
            raise SyntaxCorruption(artifact.path, "root element is not a <dict>")
        return model

    def serialize(self, model: Any, artifact: Artifact) -> bytes:
        fmt = plistlib.FMT_BINARY if artifact.options.get("binary") else plistlib.FMT_XML
        return plistlib.dumps(model, fmt=fmt, sort_keys=False)

    def empty(self, artifact: Artifact) -> bytes:
        return _EMPTY_PLIST

    def validate_path(self, path: KeyPath) -> None:
        super().validate_path(path)
        split_plist_path(path.text)

    def resolve(self, model: Any, path: KeyPath) -> Any:
        node = model
        for part in split_plist_path(path.text):
            if isinstance(node, dict):
                if part not in node:
                    return MISSING
                node = node[part]
            elif isinstance(node, list) and part.isdigit():
                idx = int(part)
                if idx >= len(node):
                    return MISSING
                node = node[idx]
            else:
                return MISSING
        return node

    def assign(self, model: Any, path: KeyPath, value: Any) -> None:
        parts = split_plist_path(path.text)
        node = model
        for part in parts[:-1]:
            if isinstance(node, list) and part.isdigit() and int(part) < len(node):
                child = node[int(part)]
                if not isinstance(child, (dict, list)):
                    child = {}
                    node[int(part)] = child
                node = child
                continue
            if not isinstance(node, dict):
                raise ValueError(f"Cannot descend into {type(node).__name__} at {part!r} of {path.text}")
            child = node.get(part)
            if not isinstance(child, (dict, list)):
                if part in node:
                    logger.warning("Replacing non-container value at %s while setting %s", part, path.text)
                child = {}
                node[part] = child
            node = child

        last = parts[-1]
        if isinstance(node, list) and last.isdigit():
            idx = int(last)
            if idx < len(node):
                node[idx] = value
            else:
                node.append(value)
        elif isinstance(node, dict):
            node[last] = value
        else:
            raise ValueError(f"Cannot set {path.text}: parent is {type(node).__name__}")
