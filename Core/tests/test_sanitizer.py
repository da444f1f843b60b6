from __future__ import annotations

import pytest

from selfheal.core.sanitizer import SelectorSanitizer, sanitize_selector
from selfheal.logging.audit import LogCategory
from tests.helpers import FakeDocument, FakeDriver, FakeElement

LOWER = "translate(@class,'ABCDEFGHIJKLMNOPQRSTUVWXYZ','abcdefghijklmnopqrstuvwxyz')"

SELECTORS = [
    "//input[id='user-name']",
    "//input[@id='user-name']",
    "[@id='user-name']",
    "//[name='password']",
    "[data-test=login]",
    "//div[contains(@class,'Foo')]",
    "//div[contains(class,'Foo')]",
    "//a[starts-with(@href, 'HTTPS')]",
    "//button[contains(text(),'Log In')]",
    "input[name='user']",
    "#login-button",
    "xpath=//button",
    "(//button)[2]",
    "//form   //input",
    "",
]


def test_shorthand_attribute_gets_sigil():
    assert sanitize_selector("//input[id='user-name']") == "//input[@id='user-name']"


def test_unqualified_predicate_gets_wildcard_tag():
    assert sanitize_selector("[@id='user-name']") == "//*[@id='user-name']"
    assert sanitize_selector("//[name='password']") == "//*[@name='password']"


def test_contains_becomes_case_insensitive():
    assert sanitize_selector("//div[contains(@class,'Foo')]") == f"//div[contains({LOWER},'foo')]"
    assert sanitize_selector("//div[contains(class,'Foo')]") == f"//div[contains({LOWER},'foo')]"


def test_text_comparison_becomes_case_insensitive():
    sanitized = sanitize_selector("//button[contains(text(),'Log In')]")
    assert sanitized.startswith("//button[contains(translate(text(),")
    assert sanitized.endswith(",'log in')]")


def test_whitespace_collapsed_and_prefix_added():
    assert sanitize_selector("//form   //input") == "//form //input"
    assert sanitize_selector("input[name='user']") == "//input[@name='user']"
    assert sanitize_selector("xpath=//button") == "xpath=//button"
    assert sanitize_selector("(//button)[2]") == "(//button)[2]"


@pytest.mark.parametrize("selector", SELECTORS)
def test_sanitizing_is_idempotent(selector):
    once = sanitize_selector(selector)
    assert sanitize_selector(once) == once


def test_tag_is_inferred_from_visible_dom_element(healing_log):
    username = FakeElement("input", {"id": "user-name"})
    document = FakeDocument(
        [username],
        selectors={
            "input[id='user-name'], input[name='user-name']": [username],
        },
    )
    sanitizer = SelectorSanitizer(FakeDriver(document), healing_log)

    assert sanitizer.sanitize("[@id='user-name']") == "//input[@id='user-name']"
    assert sanitizer.sanitize("//input[@id='user-name']") == "//input[@id='user-name']"
    assert any("Tag inferred" in message for message in healing_log.messages(LogCategory.SANITIZED))


def test_tag_inference_skips_hidden_matches_and_keeps_wildcard(healing_log):
    hidden = FakeElement("button", {"name": "go"}, displayed=False)
    document = FakeDocument([hidden], selectors={"button[id='go'], button[name='go']": [hidden]})
    sanitizer = SelectorSanitizer(FakeDriver(document), healing_log)

    assert sanitizer.sanitize("//*[@name='go']") == "//*[@name='go']"
