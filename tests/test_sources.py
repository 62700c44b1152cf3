"""Tests for rule source discovery, ordering, wrapper stripping and binding resolution."""

import os
import sys
import tempfile
import unittest
from pathlib import Path

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from resolver.errors import ConfigurationError
from rulebase.sources import (
    CORE, FLAT, HIERARCHICAL, NEVER_FILTER, ORDINARY, STUB,
    RuleBaseConfig, comment_safe, discover_sources, has_bare_double_dash,
    order_sources, resolve_bindings, strip_wrappers,
)

SUFFIX = "-CanonicalBindings.ruleml.xml"


def _write(root: Path, relative: str, body: str = "<Atom><Rel>x</Rel><Ind>1</Ind></Atom>"):
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f'<?xml version="1.0"?>\n<Assert>\n<Rulebase mapClosure="universal">\n{body}\n</Rulebase>\n</Assert>\n')
    return path


class TestConfig(unittest.TestCase):

    def test_from_config_section(self):
        class _Cfg:
            def get(self, key, default=None):
                return {"rulebase": {"root": "/srv", "core_files": ["Z.xml"], "excluded_dirs": ["tmp"]}}.get(key, default)

        cfg = RuleBaseConfig.from_config(_Cfg())
        self.assertEqual(cfg.root, Path("/srv"))
        self.assertEqual(cfg.core_files, ("Z.xml",))
        self.assertEqual(cfg.excluded_dirs, frozenset({"tmp"}))
        self.assertEqual(cfg.binding_suffix, SUFFIX)

    def test_root_argument_overrides(self):
        class _Cfg:
            def get(self, key, default=None):
                return {"rulebase": {"root": "/srv"}}.get(key, default)

        self.assertEqual(RuleBaseConfig.from_config(_Cfg(), root="/tmp/x").root, Path("/tmp/x"))

    def test_roles(self):
        cfg = RuleBaseConfig(root=".")
        self.assertEqual(cfg.role_of("CoreRuleBase.ruleml.xml"), CORE)
        self.assertEqual(cfg.role_of("ListofActiveServices.ruleml.xml"), NEVER_FILTER)
        self.assertEqual(cfg.role_of("Other.xml"), ORDINARY)
        self.assertEqual(cfg.service_of(f"TriageService{SUFFIX}"), "TriageService")


class TestDiscoverAndOrder(unittest.TestCase):

    def setUp(self):
        self.root = Path(tempfile.mkdtemp())
        self.cfg = RuleBaseConfig(root=self.root, core_files=("M.xml", "B.xml"))
        rb = "RuleBase"
        _write(self.root, f"{rb}/Z.xml")
        _write(self.root, f"{rb}/sub/A.xml")
        _write(self.root, f"{rb}/M.xml")
        _write(self.root, f"{rb}/deep/B.xml")
        _write(self.root, f"{rb}/target/Ignored.xml")
        _write(self.root, f"{rb}/.git/Ignored.xml")
        _write(self.root, f"{rb}/Stray{SUFFIX}")
        (self.root / rb / "notes.txt").write_text("not a rule file")

    def test_excluded_dirs_and_bindings_skipped(self):
        names = sorted(s.name for s in discover_sources(self.cfg))
        self.assertEqual(names, ["A.xml", "B.xml", "M.xml", "Z.xml"])

    def test_skipped_binding_file_is_logged(self):
        with self.assertLogs("routing_core.rulebase.sources", level="WARNING") as logs:
            discover_sources(self.cfg)
        self.assertTrue(any(f"Stray{SUFFIX}" in line for line in logs.output))

    def test_core_first_then_alphabetical(self):
        ordered = order_sources(discover_sources(self.cfg), self.cfg)
        self.assertEqual([s.name for s in ordered], ["M.xml", "B.xml", "A.xml", "Z.xml"])
        self.assertEqual(ordered[2].relative, "sub/A.xml")

    def test_same_name_ordered_by_relative_path(self):
        _write(self.root, "RuleBase/x/A.xml")
        ordered = order_sources(discover_sources(self.cfg), self.cfg)
        self.assertEqual([s.relative for s in ordered if s.name == "A.xml"], ["sub/A.xml", "x/A.xml"])

    def test_missing_rule_root(self):
        cfg = RuleBaseConfig(root=self.root / "nope")
        with self.assertRaises(ConfigurationError):
            discover_sources(cfg)


class TestStrip(unittest.TestCase):

    def test_wrappers_removed(self):
        text = '<?xml version="1.0" encoding="UTF-8"?>\n<Assert mapClosure="x">\n<Rulebase mapClosure="universal">\n<Atom/>\n</Rulebase>\n</Assert>'
        self.assertEqual(strip_wrappers(text), "<Atom/>")

    def test_similar_tags_kept(self):
        self.assertEqual(strip_wrappers("<Assertion/>"), "<Assertion/>")

    def test_double_dash_detection(self):
        self.assertFalse(has_bare_double_dash("<!-- a -- b --><Atom/>"))
        self.assertTrue(has_bare_double_dash("<Ind>a--b</Ind>"))

    def test_comment_safe(self):
        self.assertEqual(comment_safe("a---b--c"), "a-b-c")


class TestBindings(unittest.TestCase):

    def setUp(self):
        self.root = Path(tempfile.mkdtemp())
        self.cfg = RuleBaseConfig(root=self.root)
        b = "ServiceAttributeBindings"
        _write(self.root, f"{b}/TriageService/TriageService{SUFFIX}", "<!-- hierarchical -->")
        _write(self.root, f"{b}/TriageService{SUFFIX}", "<!-- flat, overridden -->")
        _write(self.root, f"{b}/RadiologyService{SUFFIX}", "<!-- flat -->")
        _write(self.root, f"{b}/Healthcare/LabService{SUFFIX}", "<!-- nested hierarchical -->")

    def test_hierarchical_wins(self):
        bindings = resolve_bindings(self.cfg, frozenset({"TriageService"}))
        self.assertEqual(len(bindings), 1)
        self.assertEqual(bindings[0].layout, HIERARCHICAL)
        self.assertIn("hierarchical", bindings[0].read())

    def test_hierarchical_file_by_derived_name(self):
        bindings = resolve_bindings(self.cfg, frozenset({"LabService"}))
        self.assertEqual([b.layout for b in bindings], [HIERARCHICAL])

    def test_flat_fallback(self):
        bindings = resolve_bindings(self.cfg, frozenset({"RadiologyService"}))
        self.assertEqual(bindings[0].layout, FLAT)
        self.assertEqual(bindings[0].read(), "<!-- flat -->")

    def test_stub_when_missing(self):
        bindings = resolve_bindings(self.cfg, frozenset({"PharmacyService"}))
        self.assertEqual(bindings[0].layout, STUB)
        self.assertTrue(bindings[0].is_stub)
        self.assertIn("<Rel>canonicalBinding</Rel>", bindings[0].read())
        self.assertFalse((self.root / "ServiceAttributeBindings" / f"PharmacyService{SUFFIX}").exists())

    def test_all_mode(self):
        bindings = resolve_bindings(self.cfg, None)
        layouts = {(b.service, b.layout) for b in bindings}
        self.assertEqual(layouts, {
            ("Healthcare", HIERARCHICAL),
            ("TriageService", HIERARCHICAL),
            ("RadiologyService", FLAT),
        })
        self.assertFalse(any(b.is_stub for b in bindings))

    def test_missing_bindings_dir(self):
        cfg = RuleBaseConfig(root=self.root, bindings_dir="Nope")
        with self.assertRaises(ConfigurationError):
            resolve_bindings(cfg, None)


if __name__ == "__main__":
    unittest.main()
