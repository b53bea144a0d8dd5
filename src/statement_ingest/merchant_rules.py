"""Rule-based merchant and category suggestion.

Rules are plain :class:`~statement_ingest.models.MerchantRule` records. The
engine is pure: it never mutates the rules and never raises while
classifying. Two orderings exist because the live suggestion path and the
bulk import path have always ranked rules differently; both are kept as
named policies.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence

import yaml

from statement_ingest.models import ClassificationResult, MatchType, MerchantRule
from statement_ingest.normalize import normalize_for_compare

__all__ = [
    "RuleOrdering",
    "matches_rule",
    "sort_rules",
    "classify",
    "suggest_merchant",
    "classify_for_import",
    "load_rules",
]

_LOGGER = logging.getLogger(__name__)


class RuleOrdering(str, Enum):
    # lower priority value first, ties keep declaration order
    PRIORITY_ASC = "live"
    # higher priority value first, ties prefer the longer pattern
    PRIORITY_DESC_LONGEST = "import"


_MATCHERS: Dict[MatchType, Callable[[str, str], bool]] = {
    MatchType.CONTAINS: lambda text, pat: pat in text,
    MatchType.STARTS_WITH: lambda text, pat: text.startswith(pat),
    MatchType.ENDS_WITH: lambda text, pat: text.endswith(pat),
    MatchType.EQUALS: lambda text, pat: text == pat,
}


def matches_rule(normalized_description: str, rule: MerchantRule) -> bool:
    pattern = normalize_for_compare(rule.pattern)
    if not pattern:
        return False
    return _MATCHERS[rule.match_type](normalized_description, pattern)


def sort_rules(
    rules: Iterable[MerchantRule], ordering: RuleOrdering
) -> List[MerchantRule]:
    """Return a new list ranked by *ordering*; ``sorted`` is stable."""
    if ordering is RuleOrdering.PRIORITY_ASC:
        return sorted(rules, key=lambda r: r.priority)
    return sorted(rules, key=lambda r: (-r.priority, -len(r.pattern.strip())))


def classify(
    description: str,
    rules: Sequence[MerchantRule],
    ordering: RuleOrdering = RuleOrdering.PRIORITY_ASC,
) -> ClassificationResult:
    """Return the first matching rule's merchant and category."""
    text = normalize_for_compare(description or "")
    if not text or not rules:
        return ClassificationResult()
    for rule in sort_rules(rules, RuleOrdering(ordering)):
        if matches_rule(text, rule):
            return ClassificationResult(
                merchant_name=rule.merchant_name,
                category_id=rule.category_id,
                rule_id=rule.id,
            )
    return ClassificationResult()


def suggest_merchant(
    description: str, rules: Sequence[MerchantRule]
) -> ClassificationResult:
    """Suggestion shown while a transaction is being edited."""
    return classify(description, rules, RuleOrdering.PRIORITY_ASC)


def classify_for_import(
    description: str, rules: Sequence[MerchantRule]
) -> ClassificationResult:
    """Classification applied to every row of a statement import."""
    return classify(description, rules, RuleOrdering.PRIORITY_DESC_LONGEST)


def load_rules(path: Path | str) -> List[MerchantRule]:
    """Load rules from a YAML list of mappings.

    Accepts either a top-level list or a mapping with a ``rules`` key.

    Raises
    ------
    ValueError
        If the document is not a list of mappings or a rule is invalid.
    """

    path = Path(path)
    with path.open(encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if isinstance(data, dict):
        data = data.get("rules")
    if data is None:
        data = []
    if not isinstance(data, list):
        raise ValueError(f"{path.name}: expected a list of rules")

    rules = []
    for idx, item in enumerate(data, 1):
        if not isinstance(item, dict):
            raise ValueError(f"{path.name}: rule {idx} is not a mapping")
        rules.append(MerchantRule.from_mapping(item))
    _LOGGER.debug("Loaded %d merchant rules from %s", len(rules), path)
    return rules
