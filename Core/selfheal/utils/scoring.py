from __future__ import annotations

import re
from difflib import SequenceMatcher
from typing import Iterable

from selfheal.core.metadata import (
    ConditionKind,
    ElementSignature,
    ScoredSignature,
    SelectorCondition,
    SelectorQuery,
)

MIN_HEALING_THRESHOLD = 0.4

PROBE_ATTRIBUTES = ("data-test", "data-testid", "aria-label", "placeholder", "id", "name")

_DYNAMIC_RUN = re.compile(r"[-_\d]+")
_SELECTOR_PREFIX = re.compile(r"^(?:text=|role=|css=|xpath=)", re.IGNORECASE)
_SELECTOR_PUNCTUATION = re.compile(r"[\[\]@=/*\"'():{}#.,>~+]")

_CSS_ID = re.compile(r"^([A-Za-z][\w-]*)?#([\w-]+)$")
_CSS_CLASS = re.compile(r"^([A-Za-z][\w-]*)?\.([\w-]+)$")
_ATTR_EQUALS = re.compile(r"@([\w:-]+)\s*=\s*(?:'([^']*)'|\"([^\"]*)\"|([^\s\]'\")]+))")
_FUNCTION_TERM = re.compile(
    r"(contains|starts-with)\(\s*(?:translate\(\s*)?(@[\w:-]+|text\(\)|\.)"
    r"\s*(?:,\s*'[^']*'\s*,\s*'[^']*'\s*\))?\s*,\s*(?:'([^']*)'|\"([^\"]*)\")\s*\)",
    re.IGNORECASE,
)
_TEXT_EQUALS = re.compile(
    r"(?:normalize-space\(\s*(?:\.|text\(\))?\s*\)|text\(\))\s*=\s*(?:'([^']*)'|\"([^\"]*)\")"
)
_BRACKET_ATTR = re.compile(r"\[\s*([\w:-]+)\s*([*^]?=)\s*(?:'([^']*)'|\"([^\"]*)\"|([^\]'\"]+))\s*\]")
_PREDICATE_TAG = re.compile(r"(?:^|[/\s>])([A-Za-z][\w-]*)\s*\[")
_BARE_TAG = re.compile(r"^(?:xpath=)?/{0,2}([A-Za-z][\w-]*)$")


def normalize_dynamic_id(value: str) -> str:
    """Strips digit, hyphen and underscore runs so generated suffixes compare equal."""

    return _DYNAMIC_RUN.sub("", value).lower()


def normalize_selector(selector: str) -> str:
    cleaned = _SELECTOR_PREFIX.sub("", selector.strip())
    cleaned = _SELECTOR_PUNCTUATION.sub(" ", cleaned)
    cleaned = _DYNAMIC_RUN.sub("", cleaned)
    return re.sub(r"\s+", " ", cleaned).lower().strip()


def string_score(target: str, candidate: str) -> float:
    target = target.lower()
    candidate = candidate.lower()
    if target == candidate:
        return 1.0
    if target in candidate or candidate in target:
        shorter, longer = sorted((target, candidate), key=len)
        return 0.85 * (len(shorter) / len(longer))
    return SequenceMatcher(a=target, b=candidate).ratio() * 0.75


def extract_selector_info(selector: str) -> SelectorQuery:
    """Parses a selector into the structural conditions it asserts."""

    raw = selector
    selector = selector.strip()

    css_id = _CSS_ID.match(selector)
    if css_id:
        tag = _lower(css_id.group(1))
        return SelectorQuery(raw, (SelectorCondition(ConditionKind.ID, css_id.group(2).lower(), "id", tag),))
    css_class = _CSS_CLASS.match(selector)
    if css_class:
        tag = _lower(css_class.group(1))
        return SelectorQuery(
            raw, (SelectorCondition(ConditionKind.CLASS, css_class.group(2).lower(), "class", tag),)
        )

    tag_hint = _predicate_tag(selector)
    conditions = _path_conditions(selector, tag_hint)
    if conditions:
        return SelectorQuery(raw, tuple(conditions))

    conditions = _bracket_conditions(selector, tag_hint)
    if conditions:
        return SelectorQuery(raw, tuple(conditions))

    bare_tag = _BARE_TAG.match(selector)
    if bare_tag:
        tag = bare_tag.group(1).lower()
        return SelectorQuery(raw, (SelectorCondition(ConditionKind.TAG, tag, None, tag),))

    return SelectorQuery(raw, (SelectorCondition(ConditionKind.UNKNOWN, normalize_selector(selector)),))


def score_by_attribute(condition: SelectorCondition, signature: ElementSignature) -> float:
    key = condition.key
    value = condition.value
    if not value:
        return 0.0

    scores = [0.0]
    if key == "id" and signature.id:
        scores.append(_dynamic_score(value, signature.id))
    if key == "name" and signature.name:
        scores.append(_dynamic_score(value, signature.name) * 0.9)
    if key == "class" and signature.first_class:
        scores.append(_dynamic_score(value, signature.first_class) * 0.8)
    if condition.tag_hint and condition.tag_hint != "*" and signature.tag_name:
        scores.append(string_score(condition.tag_hint, signature.tag_name) * 0.7)
    for attr_name, attr_value in signature.attributes.items():
        if attr_name.lower() == key and attr_value:
            scores.append(string_score(value, attr_value.lower()) * 0.9)
    if signature.text_content:
        text = signature.text_content.lower()
        if key == "text":
            scores.append(string_score(value, text))
        scores.append(string_score(value, text) * 0.6)
    return max(scores)


def calculate_similarity(
    selector: str | SelectorQuery,
    signature: ElementSignature,
    threshold: float = MIN_HEALING_THRESHOLD,
) -> float:
    query = selector if isinstance(selector, SelectorQuery) else extract_selector_info(selector)
    if query.is_compound:
        total = sum(score_by_attribute(condition, signature) for condition in query.conditions)
        return total / len(query.conditions)

    score = score_by_attribute(query.conditions[0], signature)
    if score < threshold and not _has_structure(query.raw):
        score = max(score, _probe_test_attributes(normalize_selector(query.raw), signature))
    return score


def generate_selector_from_signature(signature: ElementSignature | None) -> str:
    if signature is None:
        return "*"
    if signature.id:
        return f"#{css_identifier(signature.id)}"
    if signature.name:
        return f"[name='{_quote(signature.name)}']"
    tag = signature.tag_name or ""
    if signature.first_class:
        return f"{tag}.{css_identifier(signature.first_class)}"
    if signature.type:
        return f"{tag or 'input'}[type='{_quote(signature.type)}']"
    return tag or "*"


def rank_signatures(
    selector: str,
    signatures: Iterable[ElementSignature],
    threshold: float = MIN_HEALING_THRESHOLD,
) -> list[ScoredSignature]:
    """Scores and orders candidates, keeping those worth validating.

    Ties keep collection order. When nothing reaches the threshold only the
    single best candidate is returned.
    """

    query = extract_selector_info(selector)
    scored = [
        ScoredSignature(signature, calculate_similarity(query, signature, threshold))
        for signature in signatures
    ]
    scored.sort(key=lambda item: item.score, reverse=True)
    confident = [item for item in scored if item.score >= threshold]
    return confident or scored[:1]


def css_identifier(value: str) -> str:
    escaped = re.sub(r"([^\w-])", r"\\\1", value)
    if escaped[:1].isdigit():
        escaped = f"\\3{escaped[0]} {escaped[1:]}"
    return escaped


def _path_conditions(selector: str, tag_hint: str | None) -> list[SelectorCondition]:
    conditions: list[SelectorCondition] = []
    for match in _ATTR_EQUALS.finditer(selector):
        attribute = match.group(1).lower()
        value = _first_group(match, 2, 3, 4)
        conditions.append(SelectorCondition(ConditionKind.ATTRIBUTE, value.lower(), attribute, tag_hint))
    for function in ("contains", "starts-with"):
        kind = ConditionKind.CONTAINS if function == "contains" else ConditionKind.STARTS_WITH
        for match in _FUNCTION_TERM.finditer(selector):
            if match.group(1).lower() != function:
                continue
            subject = match.group(2)
            attribute = subject[1:].lower() if subject.startswith("@") else None
            value = _first_group(match, 3, 4)
            conditions.append(SelectorCondition(kind, value.lower(), attribute, tag_hint))
    for match in _TEXT_EQUALS.finditer(selector):
        value = _first_group(match, 1, 2)
        conditions.append(SelectorCondition(ConditionKind.TEXT, value.lower(), None, tag_hint))
    return conditions


def _bracket_conditions(selector: str, tag_hint: str | None) -> list[SelectorCondition]:
    kinds = {"=": ConditionKind.ATTRIBUTE, "*=": ConditionKind.CONTAINS, "^=": ConditionKind.STARTS_WITH}
    conditions: list[SelectorCondition] = []
    for match in _BRACKET_ATTR.finditer(selector):
        value = _first_group(match, 3, 4, 5).strip()
        conditions.append(SelectorCondition(kinds[match.group(2)], value.lower(), match.group(1).lower(), tag_hint))
    return conditions


def _predicate_tag(selector: str) -> str | None:
    tags = _PREDICATE_TAG.findall(selector)
    return tags[-1].lower() if tags else None


def _dynamic_score(target: str, candidate: str) -> float:
    normalized_target = normalize_dynamic_id(target)
    normalized_candidate = normalize_dynamic_id(candidate)
    if not normalized_target or not normalized_candidate:
        return string_score(target, candidate)
    return string_score(normalized_target, normalized_candidate)


def _probe_test_attributes(text: str, signature: ElementSignature) -> float:
    if not text:
        return 0.0
    best = 0.0
    for attribute in PROBE_ATTRIBUTES:
        value = signature.attributes.get(attribute)
        if value is None and attribute in ("id", "name"):
            value = getattr(signature, attribute)
        if value:
            best = max(best, string_score(text, value.strip().lower()))
    return best


def _has_structure(selector: str) -> bool:
    return "/" in selector or "=" in selector


def _first_group(match: re.Match, *groups: int) -> str:
    for group in groups:
        value = match.group(group)
        if value is not None:
            return value
    return ""


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _lower(value: str | None) -> str | None:
    return value.lower() if value else None
