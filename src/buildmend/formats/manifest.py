"""AndroidManifest.xml and other Android XML resource artifacts."""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Optional

from ..artifacts import Artifact, ArtifactFormat, KeyMode, KeyPath, KeyRequirement, MissingKey
from ..errors import SyntaxCorruption
from .base import MISSING, FormatPlugin

ANDROID_NS = "http://schemas.android.com/apk/res/android"
TOOLS_NS = "http://schemas.android.com/tools"

NAMESPACES = {"android": ANDROID_NS, "tools": TOOLS_NS}

for _prefix, _uri in NAMESPACES.items():
    ET.register_namespace(_prefix, _uri)

_NAME_ATTR = f"{{{ANDROID_NS}}}name"
_STEP = re.compile(r"^(?P<tag>[A-Za-z_][\w.-]*)(?:\[(?P<name>[^\]]+)\])?$")
_XML_DECL = '<?xml version="1.0" encoding="utf-8"?>\n'
TEXT_SUFFIX = "#text"


@dataclass(frozen=True)
class ManifestPath:
    steps: tuple[tuple[str, Optional[str]], ...]
    attribute: Optional[str] = None
    text: bool = False


def qualify(attr: str) -> str:
    """``android:name`` -> ``{http://...}name``."""
    if ":" in attr:
        prefix, local = attr.split(":", 1)
        uri = NAMESPACES.get(prefix)
        if uri is None:
            raise ValueError(f"Unknown attribute prefix: {prefix}")
        return f"{{{uri}}}{local}"
    return attr


def unqualify(attr: str) -> str:
    if attr.startswith("{"):
        uri, local = attr[1:].split("}", 1)
        for prefix, known in NAMESPACES.items():
            if known == uri:
                return f"{prefix}:{local}"
    return attr


def parse_manifest_path(text: str) -> ManifestPath:
    """Parse ``application/service[.Svc]@android:exported`` style paths.

    A trailing ``#text`` addresses the text of the element instead,
    e.g. ``color[ic_launcher_background]#text``.
    """
    body, attribute, is_text = text, None, False
    if text.endswith(TEXT_SUFFIX):
        body, is_text = text[: -len(TEXT_SUFFIX)], True
        if not body or "@" in body:
            raise ValueError(f"Invalid manifest key path: {text!r}")
    elif "@" in text:
        body, attribute = text.rsplit("@", 1)
        if not attribute:
            raise ValueError(f"Invalid manifest key path: {text!r}")
        qualify(attribute)

    steps: list[tuple[str, Optional[str]]] = []
    if body:
        for raw in body.split("/"):
            m = _STEP.match(raw)
            if not m:
                raise ValueError(f"Invalid manifest key path step {raw!r} in {text!r}")
            steps.append((m.group("tag"), m.group("name")))
    if not steps and attribute is None:
        raise ValueError("Empty manifest key path")
    return ManifestPath(tuple(steps), attribute, is_text)


def _find_child(parent: ET.Element, tag: str, name: Optional[str]) -> Optional[ET.Element]:
    for child in parent:
        if child.tag != tag:
            continue
        if name is None or name in (child.get(_NAME_ATTR), child.get("name")):
            return child
    return None


class ManifestFormat(FormatPlugin):
    """Android manifests edited through ElementTree.

    An element path resolves to its attribute mapping (``{"android:name": ...}``);
    requiring a mapping means those attributes must be present with those
    values, other attributes are left alone.
    """

    format = ArtifactFormat.ANDROID_MANIFEST
    root_tag = "manifest"
    # attribute that carries the name of a newly created element
    name_attr = _NAME_ATTR

    def _root_tag(self, artifact: Artifact) -> str:
        return artifact.options.get("root", self.root_tag)

    def parse(self, data: bytes, artifact: Artifact) -> ET.Element:
        try:
            parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True))
            root = ET.fromstring(data, parser=parser)
        except ET.ParseError as e:
            raise SyntaxCorruption(artifact.path, str(e)) from e
        expected = self._root_tag(artifact)
        if root.tag != expected:
            raise SyntaxCorruption(artifact.path, f"root element is <{root.tag}>, expected <{expected}>")
        return root

    def serialize(self, model: ET.Element, artifact: Artifact) -> bytes:
        ET.indent(model, space="    ")
        body = ET.tostring(model, encoding="unicode")
        return (_XML_DECL + body + "\n").encode("utf-8")

    def empty(self, artifact: Artifact) -> bytes:
        return (_XML_DECL + f'<manifest xmlns:android="{ANDROID_NS}">\n    <application />\n</manifest>\n').encode("utf-8")

    def validate_path(self, path: KeyPath) -> None:
        super().validate_path(path)
        parse_manifest_path(path.text)

    def _walk(self, root: ET.Element, mpath: ManifestPath) -> Optional[ET.Element]:
        node = root
        for tag, name in mpath.steps:
            child = _find_child(node, tag, name)
            if child is None:
                return None
            node = child
        return node

    def resolve(self, model: ET.Element, path: KeyPath) -> Any:
        mpath = parse_manifest_path(path.text)
        node = self._walk(model, mpath)
        if node is None:
            return MISSING
        if mpath.text:
            return (node.text or "").strip() or MISSING
        if mpath.attribute is not None:
            value = node.get(qualify(mpath.attribute))
            return MISSING if value is None else value
        return {unqualify(k): v for k, v in node.attrib.items()}

    def assign(self, model: ET.Element, path: KeyPath, value: Any) -> None:
        mpath = parse_manifest_path(path.text)
        node = model
        for tag, name in mpath.steps:
            child = _find_child(node, tag, name)
            if child is None:
                child = ET.Element(tag)
                if name is not None:
                    child.set(self.name_attr, name)
                self._insert(node, child, at_root=node is model)
            node = child

        if mpath.text:
            node.text = _attr_text(value)
            return
        if mpath.attribute is not None:
            node.set(qualify(mpath.attribute), _attr_text(value))
            return
        if not isinstance(value, dict):
            raise ValueError(f"Element path {path.text} requires a mapping of attributes")
        for attr, attr_value in value.items():
            node.set(qualify(attr), _attr_text(attr_value))

    @staticmethod
    def _insert(parent: ET.Element, child: ET.Element, *, at_root: bool) -> None:
        # permissions and features belong before <application>
        if at_root and child.tag != "application":
            for idx, existing in enumerate(parent):
                if existing.tag == "application":
                    parent.insert(idx, child)
                    return
        parent.append(child)

    def compare(self, actual: Any, req: KeyRequirement) -> Optional[MissingKey]:
        if isinstance(req.value, dict) and req.mode == KeyMode.EQUALS:
            if actual is MISSING:
                return MissingKey(req.path, "absent", expected=req.value)
            wrong = {
                k: v for k, v in req.value.items() if actual.get(k) != _attr_text(v)
            }
            if wrong:
                return MissingKey(
                    req.path,
                    "unexpected value",
                    expected=wrong,
                    actual={k: actual.get(k) for k in wrong},
                )
            return None
        if req.mode == KeyMode.EQUALS and not isinstance(req.value, str) and actual is not MISSING:
            # attributes are always text on disk
            return super().compare(actual, KeyRequirement(req.path, _attr_text(req.value), req.mode))
        return super().compare(actual, req)


class ResourceFormat(ManifestFormat):
    """Android XML resources (``res/values/*.xml``, adaptive icon definitions).

    Same paths as the manifest. Elements are named by a plain ``name``
    attribute (``color[ic_launcher_background]``) and the root element
    comes from the ``root`` option, ``<resources>`` by default.
    """

    format = ArtifactFormat.ANDROID_RESOURCE
    root_tag = "resources"
    name_attr = "name"

    def empty(self, artifact: Artifact) -> bytes:
        root = self._root_tag(artifact)
        return (_XML_DECL + f'<{root} xmlns:android="{ANDROID_NS}">\n</{root}>\n').encode("utf-8")


def _attr_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
