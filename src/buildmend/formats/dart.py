"""Generated Dart configuration classes (``lib/config/env_config.dart``)."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from ..artifacts import Artifact, ArtifactFormat, KeyPath
from ..errors import SyntaxCorruption
from .base import MISSING, FormatPlugin

_IDENT = re.compile(r"^[A-Za-z_]\w*$")
_CLASS = re.compile(r"\bclass\s+(?P<name>[A-Za-z_]\w*)\s*\{")
_FIELD = re.compile(
    r"static\s+const\s+(?P<type>[A-Za-z_]\w*)\s+(?P<name>[A-Za-z_]\w*)\s*=\s*"
    r'(?P<value>"""[\s\S]*?"""|"(?:\\.|[^"\\\n])*"|\'(?:\\.|[^\'\\\n])*\'|[^;\n]*?)\s*;'
)
_DECL_START = re.compile(r"static\s+const\b")
# string literals and comments, blanked out before counting braces
_MASKABLE = re.compile(
    r'"""[\s\S]*?"""|"(?:\\.|[^"\\\n])*"|\'(?:\\.|[^\'\\\n])*\'|//[^\n]*|/\*[\s\S]*?\*/'
)
_INT = re.compile(r"^-?\d+$")
_FLOAT = re.compile(r"^-?(?:\d+\.\d*|\.\d+|\d+(?:\.\d*)?[eE][-+]?\d+)$")

_DART_TYPES = {bool: "bool", int: "int", float: "double", str: "String"}


@dataclass
class DartField:
    type: str
    value: Any
    start: int
    end: int


@dataclass
class DartSource:
    text: str
    class_name: str
    fields: dict[str, DartField] = field(default_factory=dict)
    body_end: int = 0


def _mask(text: str) -> str:
    return _MASKABLE.sub(lambda m: " " * len(m.group(0)), text)


def _unescape(body: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            nxt = body[i + 1]
            out.append({"n": "\n", "t": "\t", "r": "\r"}.get(nxt, nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def parse_literal(dart_type: str, raw: str) -> Any:
    """Parse a Dart constant literal; raise ValueError when it does not fit ``dart_type``."""
    raw = raw.strip()
    if dart_type == "String":
        if raw.startswith('"""') and raw.endswith('"""') and len(raw) >= 6:
            return raw[3:-3]
        if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in "\"'":
            return _unescape(raw[1:-1])
        raise ValueError(f"not a String literal: {raw!r}")
    if dart_type == "bool":
        if raw in ("true", "false"):
            return raw == "true"
        raise ValueError(f"not a bool literal: {raw!r}")
    if dart_type == "int":
        if _INT.match(raw):
            return int(raw)
        raise ValueError(f"not an int literal: {raw!r}")
    if dart_type == "double":
        if _INT.match(raw) or _FLOAT.match(raw):
            return float(raw)
        raise ValueError(f"not a double literal: {raw!r}")
    raise ValueError(f"unsupported constant type {dart_type}")


def render_literal(value: Any) -> tuple[str, str]:
    """Return ``(dart_type, literal)`` for a Python value."""
    dart_type = _DART_TYPES.get(type(value))
    if dart_type is None:
        raise ValueError(f"Cannot render {type(value).__name__} as a Dart constant")
    if dart_type == "bool":
        return dart_type, "true" if value else "false"
    if dart_type in ("int", "double"):
        return dart_type, repr(value)
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("$", "\\$")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return dart_type, f'"{escaped}"'


class DartFormat(FormatPlugin):
    """A Dart class of ``static const`` fields.

    KeyPaths are field names. Only the declarations a requirement touches
    are rewritten; comments, getters and unrelated fields stay as they are.
    """

    format = ArtifactFormat.GENERATED_SOURCE

    def _class_name(self, artifact: Artifact) -> str:
        return artifact.options.get("class_name", "EnvConfig")

    def parse(self, data: bytes, artifact: Artifact) -> DartSource:
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SyntaxCorruption(artifact.path, str(e)) from e
        try:
            return self._parse_text(text, self._class_name(artifact))
        except ValueError as e:
            raise SyntaxCorruption(artifact.path, str(e)) from e

    def _parse_text(self, text: str, class_name: str) -> DartSource:
        masked = _mask(text)
        classes = [m for m in _CLASS.finditer(masked) if m.group("name") == class_name]
        if len(classes) != 1:
            raise ValueError(f"expected exactly one class {class_name}, found {len(classes)}")

        depth = 0
        for ch in masked:
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth < 0:
                    raise ValueError("unbalanced braces")
        if depth != 0:
            raise ValueError("unbalanced braces")

        open_idx = classes[0].end() - 1
        depth = 0
        body_end = -1
        for idx in range(open_idx, len(masked)):
            if masked[idx] == "{":
                depth += 1
            elif masked[idx] == "}":
                depth -= 1
                if depth == 0:
                    body_end = idx
                    break

        source = DartSource(text=text, class_name=class_name, body_end=body_end)
        matched: set[int] = set()
        for m in _FIELD.finditer(text):
            if not masked.startswith("static", m.start()):
                # declaration text sits inside a string or comment
                continue
            try:
                value = parse_literal(m.group("type"), m.group("value"))
            except ValueError as e:
                raise ValueError(f"field {m.group('name')}: {e}") from e
            source.fields[m.group("name")] = DartField(m.group("type"), value, m.start(), m.end())
            matched.add(m.start())

        for m in _DECL_START.finditer(masked):
            if m.start() not in matched:
                line_no = text.count("\n", 0, m.start()) + 1
                raise ValueError(f"malformed constant declaration on line {line_no}")
        return source

    def serialize(self, model: DartSource, artifact: Artifact) -> bytes:
        return model.text.encode("utf-8")

    def empty(self, artifact: Artifact) -> bytes:
        name = self._class_name(artifact)
        return f"// Generated environment configuration.\n\nclass {name} {{\n}}\n".encode("utf-8")

    def validate_path(self, path: KeyPath) -> None:
        super().validate_path(path)
        if not _IDENT.match(path.text):
            raise ValueError(f"Invalid Dart field name: {path.text!r}")

    def resolve(self, model: DartSource, path: KeyPath) -> Any:
        entry = model.fields.get(path.text)
        return MISSING if entry is None else entry.value

    def assign(self, model: DartSource, path: KeyPath, value: Any) -> None:
        dart_type, literal = render_literal(value)
        decl = f"static const {dart_type} {path.text} = {literal};"
        entry = model.fields.get(path.text)
        if entry is not None:
            text = model.text[: entry.start] + decl + model.text[entry.end :]
        else:
            head = model.text[: model.body_end]
            if not head.endswith("\n"):
                head += "\n"
            text = head + f"  {decl}\n" + model.text[model.body_end :]

        updated = self._parse_text(text, model.class_name)
        model.text = updated.text
        model.fields = updated.fields
        model.body_end = updated.body_end
