"""
Pattern-based overrides on top of computed classification.

Each rule list holds regular expressions matched (case-insensitive, `re.search`)
against the normalized mod filename (`X.jar` for both `X.jar` and
`X.jar.disabled`), not the path, so a pattern such as `\.disabled$` never
matches. Rules adjust the support of a single platform: the client package
applies the client rule set, the server tree the server one.

When a filename matches more than one list, the highest-precedence list decides:

    ensure_optional  >  ensure  >  ignore

    ignore           -> optional if disabled, else unsupported
    ensure           -> optional if disabled, else required
    ensure_optional  -> optional
"""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from mod_classifier import ModClassification, Platform, Support

logger = logging.getLogger(__name__)


@dataclass
class ModRules:
    ensure: list = field(default_factory=list)
    ignore: list = field(default_factory=list)
    ensure_optional: list = field(default_factory=list)

    def __post_init__(self):
        self.ensure = _compile(self.ensure)
        self.ignore = _compile(self.ignore)
        self.ensure_optional = _compile(self.ensure_optional)

    @classmethod
    def from_rule_set(cls, rule_set) -> "ModRules":
        return cls(ensure=list(rule_set.ensure), ignore=list(rule_set.ignore), ensure_optional=list(rule_set.ensure_optional))

    def is_empty(self) -> bool:
        return not (self.ensure or self.ignore or self.ensure_optional)

    def matches(self, filename: str) -> list[str]:
        """Names of the rule lists matching `filename`, highest precedence first."""
        hits = []
        for name in RULE_PRECEDENCE:
            if any(p.search(filename) for p in getattr(self, name)):
                hits.append(name)
        return hits


RULE_PRECEDENCE = ("ensure_optional", "ensure", "ignore")


def _compile(patterns: Iterable) -> list[re.Pattern]:
    compiled = []
    for p in patterns or []:
        if isinstance(p, re.Pattern):
            compiled.append(p)
        else:
            compiled.append(re.compile(str(p), re.IGNORECASE))
    return compiled


def rule_outcome(rule: str, enabled: bool) -> Support:
    if rule == "ensure_optional":
        return Support.OPTIONAL
    if rule == "ensure":
        return Support.REQUIRED if enabled else Support.OPTIONAL
    if rule == "ignore":
        return Support.UNSUPPORTED if enabled else Support.OPTIONAL
    raise ValueError(f"Unknown rule list: {rule}")


def apply_rules(
    classifications: Sequence[ModClassification],
    rules: Optional[ModRules],
    platform: Platform,
) -> list[ModClassification]:
    """Returns new classifications; inputs are left untouched."""
    if rules is None or rules.is_empty():
        return list(classifications)

    out = []
    for c in classifications:
        hits = rules.matches(c.filename)
        if not hits:
            out.append(c)
            continue
        if len(hits) > 1:
            logger.warning(
                f"{c.filename} matches {', '.join(hits)} {platform.value} rules; '{hits[0]}' takes precedence"
            )
        support = rule_outcome(hits[0], c.enabled)
        if support != c.support(platform):
            logger.info(f"{platform.value} rule '{hits[0]}': {c.filename} {c.support(platform).value} -> {support.value}")
        out.append(c.with_support(platform, support))
    return out
