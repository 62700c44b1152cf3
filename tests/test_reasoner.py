"""Tests for the RuleML fact engine behind the parse/query boundary."""

import os
import sys
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from resolver.errors import RuleBaseParseError
from rulebase.reasoner import Fact, KnowledgeBase, RuleMLEngine

DOCUMENT = """
<Assert>
<Rulebase mapClosure="universal">
<!-- Version -->
<Data><Atom><Rel>Version</Rel><Ind>v001</Ind></Atom></Data>
<Atom><Rel>activeService</Rel><Ind>TriageService</Ind><Ind>processTriageAssessment</Ind><Ind>224.0.1.3</Ind><Ind>1025</Ind></Atom>
<Atom><Rel>activeService</Rel><Ind>TriageService</Ind><Ind>reassess</Ind><Ind>224.0.1.3</Ind><Ind>1026</Ind></Atom>
<Atom><Rel>activeService</Rel><Ind>RadiologyService</Ind><Ind>scan</Ind><Ind>ip2</Ind><Ind>1030</Ind></Atom>
<Atom><Rel>pair</Rel><Ind>a</Ind><Ind>a</Ind></Atom>
<Atom><Rel>pair</Rel><Ind>a</Ind><Ind>b</Ind></Atom>
<Implies>
  <Atom><Rel>activeService</Rel><Var>s</Var><Var>o</Var><Var>c</Var><Var>p</Var></Atom>
  <Atom><Rel>deployed</Rel><Var>s</Var></Atom>
</Implies>
</Rulebase>
</Assert>
"""


def _query(rel, *args):
    parts = "".join(
        f"<Var>{a[1:]}</Var>" if a.startswith("?") else f"<Ind>{a}</Ind>" for a in args
    )
    return f"<Query><Atom><Rel>{rel}</Rel>{parts}</Atom></Query>"


class TestParse(unittest.TestCase):

    def setUp(self):
        self.kb = RuleMLEngine().parse(DOCUMENT)

    def test_ground_facts_indexed(self):
        self.assertEqual(self.kb.count("activeService"), 3)
        self.assertEqual(self.kb.facts("Version"), [Fact("Version", ("v001",))])
        self.assertEqual(len(self.kb), 6)

    def test_rules_counted_not_indexed(self):
        self.assertEqual(self.kb.rules, 1)
        self.assertEqual(self.kb.count("deployed"), 0)

    def test_malformed_document(self):
        with self.assertRaises(RuleBaseParseError) as ctx:
            RuleMLEngine().parse("<Assert><Atom></Assert>")
        self.assertIsNotNone(ctx.exception.line)

    def test_handles_are_independent(self):
        other = RuleMLEngine().parse("<Assert><Atom><Rel>x</Rel><Ind>1</Ind></Atom></Assert>")
        self.assertEqual(other.relations, ["x"])
        self.assertIn("activeService", self.kb.relations)


class TestQuery(unittest.TestCase):

    def setUp(self):
        self.engine = RuleMLEngine()
        self.kb = self.engine.parse(DOCUMENT)

    def test_rows_in_variable_order(self):
        rows = self.engine.query(self.kb, _query("activeService", "TriageService", "?operation", "?ip", "?port"))
        self.assertEqual(rows, [
            [("?operation", "processTriageAssessment"), ("?ip", "224.0.1.3"), ("?port", "1025")],
            [("?operation", "reassess"), ("?ip", "224.0.1.3"), ("?port", "1026")],
        ])

    def test_no_rows(self):
        self.assertEqual(self.engine.query(self.kb, _query("activeService", "Nobody", "?o", "?i", "?p")), [])

    def test_arity_must_match(self):
        self.assertEqual(self.engine.query(self.kb, _query("activeService", "TriageService", "?o")), [])

    def test_repeated_variable_must_agree(self):
        rows = self.engine.query(self.kb, _query("pair", "?x", "?x"))
        self.assertEqual(rows, [[("?x", "a")]])

    def test_all_ground_query(self):
        rows = self.engine.query(self.kb, _query("pair", "a", "b"))
        self.assertEqual(rows, [[]])

    def test_query_without_atom(self):
        with self.assertRaises(RuleBaseParseError):
            self.engine.query(self.kb, "<Query></Query>")

    def test_malformed_query(self):
        with self.assertRaises(RuleBaseParseError):
            self.engine.query(self.kb, "<Query><Atom>")

    def test_empty_knowledge_base(self):
        self.assertEqual(self.engine.query(KnowledgeBase(), _query("Version", "?v")), [])


if __name__ == "__main__":
    unittest.main()
