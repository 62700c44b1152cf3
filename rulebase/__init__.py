"""
Routing Core — Knowledge Base Assembler

Merges the XML fact files under a rule root into one versioned
Service.ruleml, filtered to the requested services.

Usage:
    from rulebase import RuleBaseBuilder, RuleBaseConfig, parse_services

    cfg = RuleBaseConfig(root="/srv/common")
    result = RuleBaseBuilder("v001", parse_services("ALL"), cfg).build()
"""

from rulebase.sources import (
    RuleBaseConfig, RuleSource, BindingSource,
    discover_sources, order_sources, strip_wrappers, resolve_bindings,
)
from rulebase.reasoner import Fact, KnowledgeBase, ReasoningEngine, RuleMLEngine
from rulebase.builder import (
    ALL, BuildResult, DispatchFact, RuleBaseBuilder, parse_services,
)
