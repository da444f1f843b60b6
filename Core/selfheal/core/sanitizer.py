from __future__ import annotations

import re

from selenium.common.exceptions import WebDriverException
from selenium.webdriver.common.by import By

from selfheal.logging.audit import HealingLog, LogCategory

XPATH_TAG = "xpath="
UPPERCASE = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
LOWERCASE = "abcdefghijklmnopqrstuvwxyz"
TAG_CANDIDATES = ("input", "button", "select", "textarea", "a", "label", "div", "span")

_SHORTHAND_ATTRIBUTE = re.compile(r"\[([A-Za-z_][\w-]*)=")
_UNQUALIFIED_PREDICATE = re.compile(r"^(xpath=)?(//)?\[")
_FUNCTION_WITHOUT_SIGIL = re.compile(r"\b(contains|starts-with)\((\w+),")
_CASE_SENSITIVE_FUNCTION = re.compile(
    r"(contains|starts-with)\(\s*(?:@([\w:-]+)|text\(\))\s*,\s*'([^']+)'\s*\)",
    re.IGNORECASE,
)
_WILDCARD_PREFIX = re.compile(r"^(xpath=)?//\*\[")
_INFERABLE_VALUE = re.compile(r"@(?:id|name)='([^']+)'")


def infer_selector_type(selector: str) -> str:
    stripped = selector.strip()
    if stripped.startswith(XPATH_TAG) or stripped.startswith("/") or stripped.startswith("("):
        return "xpath"
    return "css"


def to_locator(selector: str) -> tuple[str, str]:
    """Maps a selector onto the Selenium (by, value) pair that queries it."""

    stripped = selector.strip()
    if infer_selector_type(stripped) == "xpath":
        if stripped.startswith(XPATH_TAG):
            stripped = stripped[len(XPATH_TAG):]
        return By.XPATH, stripped
    return By.CSS_SELECTOR, stripped


def correct_basic_syntax(selector: str) -> str:
    fixed = _SHORTHAND_ATTRIBUTE.sub(r"[@\1=", selector)
    fixed = _UNQUALIFIED_PREDICATE.sub(lambda match: f"{match.group(1) or ''}{match.group(2) or ''}*[", fixed)
    return _FUNCTION_WITHOUT_SIGIL.sub(r"\1(@\2,", fixed)


def make_comparisons_case_insensitive(selector: str) -> str:
    def lower_both_sides(match: re.Match) -> str:
        function, attribute, literal = match.group(1), match.group(2), match.group(3)
        subject = f"@{attribute}" if attribute else "text()"
        return f"{function}(translate({subject},'{UPPERCASE}','{LOWERCASE}'),'{literal.lower()}')"

    return _CASE_SENSITIVE_FUNCTION.sub(lower_both_sides, selector)


def collapse_whitespace(selector: str) -> str:
    return re.sub(r"\s{2,}", " ", selector).strip()


def ensure_xpath_prefix(selector: str) -> str:
    if infer_selector_type(selector) == "xpath":
        return selector
    return f"//{selector}"


REWRITES = (
    correct_basic_syntax,
    make_comparisons_case_insensitive,
    collapse_whitespace,
    ensure_xpath_prefix,
)


def sanitize_selector(selector: str) -> str:
    """Rewrites a malformed location-path query into a valid, case-insensitive one.

    Every rewrite is idempotent, so sanitizing a sanitized selector is a no-op.
    """

    fixed = selector.strip()
    for rewrite in REWRITES:
        try:
            fixed = rewrite(fixed)
        except Exception:  # noqa: BLE001 - a partial rewrite is still usable.
            return fixed
    return fixed


class SelectorSanitizer:
    """Static rewrites plus tag inference against the live DOM."""

    def __init__(self, driver, healing_log: HealingLog) -> None:
        self.driver = driver
        self.healing_log = healing_log

    def sanitize(self, selector: str) -> str:
        original = selector.strip()
        fixed = sanitize_selector(original)
        fixed = self.infer_tag(fixed)
        if fixed != original:
            self.healing_log.log(LogCategory.SANITIZED, f'Original: "{original}" -> Sanitized: "{fixed}"')
        return fixed

    def infer_tag(self, selector: str) -> str:
        if not _WILDCARD_PREFIX.match(selector):
            return selector
        value_match = _INFERABLE_VALUE.search(selector)
        if not value_match:
            return selector
        value = value_match.group(1)
        for tag in TAG_CANDIDATES:
            try:
                matches = self.driver.find_elements(By.CSS_SELECTOR, f"{tag}[id='{value}'], {tag}[name='{value}']")
                visible = bool(matches) and matches[0].is_displayed()
            except WebDriverException as exc:
                self.healing_log.log(LogCategory.DIAG, f"Tag probe '{tag}' failed: {type(exc).__name__}")
                continue
            if visible:
                improved = selector.replace("//*[", f"//{tag}[", 1)
                self.healing_log.log(LogCategory.SANITIZED, f'Tag inferred from DOM: "{tag}" -> "{improved}"')
                return improved
        return selector
