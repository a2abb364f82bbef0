"""Tests for dependency resolver."""

import pytest

from buildmend.catalog import Catalog, load_catalog
from buildmend.config import FeatureFlags
from buildmend.resolver import DependencyResolver, base_name


def make_catalog(artifacts: dict) -> Catalog:
    """Helper to create a test catalog with one always-on rule per artifact."""
    return Catalog.from_dict({
        "artifacts": [
            {"name": name, "path": f"{name}.json", "format": "json", "depends_on": data.get("depends_on", [])}
            for name, data in artifacts.items()
        ],
        "rules": [
            {"name": f"{name}-rule", "artifact": name, "keys": [{"path": "/name", "value": name}]}
            for name in artifacts
        ],
    })


def test_order_no_deps_keeps_catalog_order():
    resolver = DependencyResolver(make_catalog({"a": {}, "b": {}, "c": {}}))
    assert resolver.get_order() == ["a", "b", "c"]


def test_order_linear():
    resolver = DependencyResolver(make_catalog({
        "entitlements": {"depends_on": ["info"]},
        "firebase": {"depends_on": ["entitlements"]},
        "info": {},
    }))
    order = resolver.get_order()

    assert order.index("info") < order.index("entitlements")
    assert order.index("entitlements") < order.index("firebase")


def test_order_diamond():
    resolver = DependencyResolver(make_catalog({
        "manifest": {},
        "plist": {},
        "icons": {"depends_on": ["manifest", "plist"]},
        "contents": {"depends_on": ["icons"]},
    }))
    order = resolver.get_order()

    assert order.index("manifest") < order.index("icons")
    assert order.index("plist") < order.index("icons")
    assert order.index("icons") < order.index("contents")


def test_circular_dependency_detection():
    resolver = DependencyResolver(make_catalog({
        "a": {"depends_on": ["b"]},
        "b": {"depends_on": ["c"]},
        "c": {"depends_on": ["a"]},
    }))

    with pytest.raises(ValueError, match="Circular dependency"):
        resolver.get_order()
    assert any("Circular dependency" in issue for issue in resolver.validate())


def test_dependents():
    resolver = DependencyResolver(make_catalog({
        "info": {},
        "entitlements": {"depends_on": ["info"]},
        "firebase": {"depends_on": ["info"]},
    }))
    assert resolver.dependents("info") == ["entitlements", "firebase"]
    assert resolver.dependents("firebase") == []


def test_resolve_sorts_pairs_and_variants_by_dependency():
    catalog = Catalog.from_dict({
        "artifacts": [
            {"name": "icon", "path": "icon-${label}.png", "format": "image", "depends_on": ["contents"],
             "variants": [{"label": "a"}, {"label": "b"}]},
            {"name": "contents", "path": "Contents.json", "format": "json"},
        ],
        "rules": [
            {"name": "px", "artifact": "icon", "keys": [{"path": "format", "value": "PNG"}]},
            {"name": "img", "artifact": "contents", "keys": [{"path": "/images", "value": [], "mode": "contains"}]},
        ],
    })
    pairs = DependencyResolver(catalog).resolve(FeatureFlags({}))
    assert [a.name for a, _ in pairs] == ["contents", "icon[a]", "icon[b]"]


def test_base_name():
    assert base_name("ios_app_icon[20x20@1x]") == "ios_app_icon"
    assert base_name("android_manifest") == "android_manifest"


def test_print_graph_marks_active():
    catalog = Catalog.from_dict({
        "flags": {"PUSH_NOTIFY": {"type": "bool"}},
        "artifacts": [
            {"name": "info", "path": "Info.plist", "format": "plist"},
            {"name": "entitlements", "path": "Runner.entitlements", "format": "plist", "depends_on": ["info"]},
        ],
        "rules": [
            {"name": "id", "artifact": "info", "keys": [{"path": "A", "value": "x"}]},
            {"name": "aps", "artifact": "entitlements", "when": "PUSH_NOTIFY",
             "keys": [{"path": "aps-environment", "value": "production"}]},
        ],
    })
    graph = DependencyResolver(catalog).print_graph(FeatureFlags({}))
    assert "[info (any, plist) *] (no deps)" in graph
    assert "[entitlements (any, plist)] → info" in graph


# =========================================================================
# shipped requirement table
# =========================================================================


def test_shipped_catalog_is_valid():
    assert DependencyResolver(load_catalog()).validate() == []


def test_shipped_catalog_order_respects_dependencies():
    resolver = DependencyResolver(load_catalog())
    order = resolver.get_order()
    for name in order:
        for dep in resolver.catalog.artifact(name).depends_on:
            assert order.index(dep) < order.index(name)


def test_shipped_catalog_minimal_flags():
    pairs = DependencyResolver(load_catalog()).resolve(FeatureFlags({"BUNDLE_ID": "com.acme.app"}))
    names = [a.name for a, _ in pairs]

    assert names.index("ios_info_plist") < names.index("ios_appicon_contents")
    assert names.index("ios_appicon_contents") < names.index("ios_app_icon[1024x1024@1x]")
    assert "ios_google_service_info" not in names
    assert "ios_entitlements" not in names
    assert sum(n.startswith("ios_app_icon[") for n in names) == 15
    assert sum(n.startswith("android_launcher_icon[") for n in names) == 5
    assert sum(n.startswith("android_launcher_foreground[") for n in names) == 5
    assert names.index("android_icon_background") < names.index("android_adaptive_icon[ic_launcher]")
    assert names.index("android_launcher_foreground[xxxhdpi]") < names.index("android_adaptive_icon[ic_launcher_round]")
    assert all(req.satisfiable for _, req in pairs)


def test_shipped_catalog_platform_filter():
    pairs = DependencyResolver(load_catalog()).resolve(FeatureFlags({}), platforms=["android"])
    assert {a.platform for a, _ in pairs} <= {"android", "any"}
    assert "env_config_dart" in [a.name for a, _ in pairs]
