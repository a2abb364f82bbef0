"""JSON artifacts: asset catalog Contents.json and google-services.json."""

from __future__ import annotations

import json
from typing import Any

from ..artifacts import Artifact, ArtifactFormat, KeyPath
from ..errors import SyntaxCorruption
from .base import MISSING, FormatPlugin


def split_pointer(text: str) -> list[str]:
    """Split an RFC 6901 JSON pointer into unescaped reference tokens."""
    if text == "":
        return []
    if not text.startswith("/"):
        raise ValueError(f"Invalid JSON pointer: {text!r}")
    return [t.replace("~1", "/").replace("~0", "~") for t in text[1:].split("/")]


class JsonFormat(FormatPlugin):
    """JSON documents.

    ``options.style == "xcode"`` reproduces Xcode's asset catalog layout
    (``"key" : value`` with two-space indent) so actool sees no diff.
    """

    format = ArtifactFormat.JSON

    def parse(self, data: bytes, artifact: Artifact) -> Any:
        try:
            text = data.decode("utf-8-sig")
            model = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise SyntaxCorruption(artifact.path, str(e)) from e
        root = artifact.options.get("root", "object")
        if root == "object" and not isinstance(model, dict):
            raise SyntaxCorruption(artifact.path, "top-level value is not an object")
        return model

    def serialize(self, model: Any, artifact: Artifact) -> bytes:
        if artifact.options.get("style") == "xcode":
            text = json.dumps(model, indent=2, separators=(",", " : "), ensure_ascii=False)
        else:
            text = json.dumps(model, indent=2, ensure_ascii=False)
        return (text + "\n").encode("utf-8")

    def empty(self, artifact: Artifact) -> bytes:
        return self.serialize({}, artifact)

    def validate_path(self, path: KeyPath) -> None:
        super().validate_path(path)
        split_pointer(path.text)

    def resolve(self, model: Any, path: KeyPath) -> Any:
        node = model
        for token in split_pointer(path.text):
            if isinstance(node, dict):
                if token not in node:
                    return MISSING
                node = node[token]
            elif isinstance(node, list):
                if not token.isdigit() or int(token) >= len(node):
                    return MISSING
                node = node[int(token)]
            else:
                return MISSING
        return node

    def assign(self, model: Any, path: KeyPath, value: Any) -> None:
        tokens = split_pointer(path.text)
        if not tokens:
            raise ValueError("Cannot replace the document root")

        node = model
        for token in tokens[:-1]:
            if isinstance(node, list):
                if not token.isdigit() or int(token) >= len(node):
                    raise ValueError(f"Index {token!r} out of range in {path.text}")
                node = node[int(token)]
                continue
            child = node.get(token)
            if not isinstance(child, (dict, list)):
                child = {}
                node[token] = child
            node = child

        last = tokens[-1]
        if isinstance(node, list):
            if last == "-" or (last.isdigit() and int(last) == len(node)):
                node.append(value)
            elif last.isdigit() and int(last) < len(node):
                node[int(last)] = value
            else:
                raise ValueError(f"Index {last!r} out of range in {path.text}")
        else:
            node[last] = value
