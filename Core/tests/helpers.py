from __future__ import annotations

import itertools
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import pytest
from selenium.common.exceptions import (
    ElementClickInterceptedException,
    InvalidSelectorException,
    JavascriptException,
    NoSuchShadowRootException,
    StaleElementReferenceException,
    WebDriverException,
)

from selfheal.config.schema import HealingSettings
from selfheal.core.actions import FORCE_CLICK_SCRIPT, OPTION_STATE_SCRIPT
from selfheal.core.browser import BrowserSession, HealingSession
from selfheal.core.resolver import IS_CONNECTED_SCRIPT
from selfheal.utils.dom_extract import DESCRIBE_ELEMENT_SCRIPT, FRAME_ELEMENT_SCRIPT, FRAME_SELECTOR

_element_ids = itertools.count(1)


class FakeShadowRoot:
    def __init__(self, children: list[FakeElement]) -> None:
        self.children = children

    def find_elements(self, by, value):
        return list(self.children)


class FakeElement:
    """In-memory stand-in for a Selenium WebElement."""

    def __init__(
        self,
        tag: str,
        attributes: dict[str, str] | None = None,
        text: str = "",
        *,
        displayed: bool = True,
        enabled: bool = True,
        connected: bool = True,
        selected: bool = False,
        click_failures: int = 0,
        force_click_failures: int = 0,
        shadow_children: list[FakeElement] | None = None,
        frame_document: FakeDocument | None = None,
        frame_error: bool = False,
        unreadable: bool = False,
        size: tuple[float, float] = (100.0, 20.0),
        display: str = "block",
    ) -> None:
        self.id = f"fake-{next(_element_ids)}"
        self.tag_name = tag
        self.attributes = dict(attributes or {})
        self.text = text
        self.displayed = displayed
        self.enabled = enabled
        self.connected = connected
        self.selected = selected
        self.click_failures = click_failures
        self.force_click_failures = force_click_failures
        self.shadow_children = shadow_children
        self.frame_document = frame_document
        self.frame_error = frame_error
        self.unreadable = unreadable
        self.size = size
        self.display = display
        self.value = ""
        self.clicks = 0
        self.forced_clicks = 0
        self.keys: list[str] = []
        self.fail_send_keys: Exception | None = None

    def is_displayed(self) -> bool:
        return self.displayed

    def is_enabled(self) -> bool:
        return self.enabled

    def is_selected(self) -> bool:
        return self.selected

    def click(self) -> None:
        if self.click_failures > 0:
            self.click_failures -= 1
            raise ElementClickInterceptedException("element click intercepted")
        self.clicks += 1
        self.selected = not self.selected

    def force_click(self) -> None:
        if self.force_click_failures > 0:
            self.force_click_failures -= 1
            raise JavascriptException("element is not attached")
        self.forced_clicks += 1
        self.selected = not self.selected

    def clear(self) -> None:
        self.value = ""

    def send_keys(self, *values: str) -> None:
        if self.fail_send_keys is not None:
            raise self.fail_send_keys
        self.keys.extend(values)
        self.value += "".join(values)

    def get_dom_attribute(self, name: str):
        return self.attributes.get(name)

    def get_attribute(self, name: str):
        if name == "textContent":
            return self.text
        return self.attributes.get(name)

    def screenshot(self, path: str) -> bool:
        Path(path).write_bytes(b"\x89PNG")
        return True

    @property
    def shadow_root(self) -> FakeShadowRoot:
        if self.shadow_children is None:
            raise NoSuchShadowRootException("no shadow root")
        return FakeShadowRoot(self.shadow_children)

    def describe(self) -> dict:
        return {
            "tagName": self.tag_name,
            "id": self.attributes.get("id"),
            "name": self.attributes.get("name"),
            "className": self.attributes.get("class"),
            "type": self.attributes.get("type"),
            "textContent": self.text.strip() or None,
            "attributes": dict(self.attributes),
            "hasShadowRoot": self.shadow_children is not None,
        }

    def option_state(self) -> dict:
        return {
            "width": self.size[0],
            "height": self.size[1],
            "display": self.display,
            "disabled": "disabled" in self.attributes,
        }


def _matches(element: FakeElement, value: str) -> bool | None:
    attributes = element.attributes
    if value == "*":
        return True
    match = re.fullmatch(r"#([\w-]+)", value)
    if match:
        return attributes.get("id") == match.group(1)
    match = re.fullmatch(r"\[name='([^']*)'\]", value)
    if match:
        return attributes.get("name") == match.group(1)
    match = re.fullmatch(r"([\w-]+)\.([\w-]+)", value)
    if match:
        return element.tag_name == match.group(1) and match.group(2) in attributes.get("class", "").split()
    match = re.fullmatch(r"([\w-]+)\[type='([^']*)'\]", value)
    if match:
        return element.tag_name == match.group(1) and attributes.get("type") == match.group(2)
    match = re.fullmatch(r"//([\w-]+|\*)\[@([\w-]+)='([^']*)'\]", value)
    if match:
        tag, attribute, expected = match.groups()
        return tag in ("*", element.tag_name) and attributes.get(attribute) == expected
    match = re.fullmatch(r"//([\w-]+|\*)\[contains\(@([\w-]+),'([^']*)'\)\]", value)
    if match:
        tag, attribute, expected = match.groups()
        return tag in ("*", element.tag_name) and expected in attributes.get(attribute, "")
    match = re.fullmatch(
        r"//([\w-]+|\*)\[contains\(translate\(@([\w-]+),'[A-Z]+','[a-z]+'\),'([^']*)'\)\]", value
    )
    if match:
        tag, attribute, expected = match.groups()
        return tag in ("*", element.tag_name) and expected in attributes.get(attribute, "").lower()
    if re.fullmatch(r"[\w-]+", value):
        return element.tag_name == value
    return None


class FakeDocument:
    """Flat element list answering the simple selector shapes the engine generates."""

    def __init__(self, elements: list[FakeElement] | None = None, selectors: dict[str, list] | None = None) -> None:
        self.elements = list(elements or [])
        self.selectors = dict(selectors or {})

    def find_elements(self, by, value):
        if value in self.selectors:
            return [element for element in self.selectors[value] if element.connected]
        if value == FRAME_SELECTOR:
            return [element for element in self.elements if element.tag_name in ("iframe", "frame")]
        if value.startswith("//") and "#" in value:
            raise InvalidSelectorException(f"invalid xpath: {value}")
        return [element for element in self.elements if element.connected and _matches(element, value)]


class FakeSwitchTo:
    def __init__(self, driver: FakeDriver) -> None:
        self.driver = driver

    def frame(self, frame_element: FakeElement) -> None:
        if frame_element.frame_error or frame_element.frame_document is None:
            raise WebDriverException("frame detached")
        self.driver.frame_path.append(frame_element)

    def parent_frame(self) -> None:
        if self.driver.frame_path:
            self.driver.frame_path.pop()

    def default_content(self) -> None:
        self.driver.frame_path.clear()


class FakeDriver:
    """Selenium-shaped driver over a :class:`FakeDocument`."""

    def __init__(self, document: FakeDocument) -> None:
        self.document = document
        self.frame_path: list[FakeElement] = []
        self.switch_to = FakeSwitchTo(self)
        self.scripts: list[tuple[str, tuple]] = []

    @property
    def current(self) -> FakeDocument:
        return self.frame_path[-1].frame_document if self.frame_path else self.document

    def find_elements(self, by, value):
        return self.current.find_elements(by, value)

    def execute_script(self, script: str, *args):
        self.scripts.append((script, args))
        if script == DESCRIBE_ELEMENT_SCRIPT:
            if args[0].unreadable:
                raise StaleElementReferenceException("stale element")
            return args[0].describe()
        if script == IS_CONNECTED_SCRIPT:
            return args[0].connected
        if script == FORCE_CLICK_SCRIPT:
            args[0].force_click()
            return None
        if script == OPTION_STATE_SCRIPT:
            return args[0].option_state()
        if script == FRAME_ELEMENT_SCRIPT:
            return self.frame_path[-1] if self.frame_path else None
        return None

    def scripts_named(self, script: str) -> list[tuple]:
        return [args for recorded, args in self.scripts if recorded == script]


def login_page(username: FakeElement | None = None) -> FakeDocument:
    """A small login form; ``username`` replaces the default username input."""

    username = username or FakeElement("input", {"id": "user-name", "name": "user-name", "type": "text"})
    return FakeDocument(
        [
            FakeElement("div", {"class": "login_wrapper"}),
            username,
            FakeElement("button", {"class": "submit-button"}, "Login"),
        ]
    )


def fast_settings(tmp_path: Path | None = None, **overrides) -> HealingSettings:
    values = {
        "short_timeout_ms": 20,
        "medium_timeout_ms": 40,
        "poll_interval_seconds": 0.005,
        "click_backoff_seconds": 0.0,
        "random_option_delay_seconds": 0.0,
    }
    if tmp_path is not None:
        values["artifacts_root"] = str(tmp_path / "artifacts")
    values.update(overrides)
    return HealingSettings(**values)


@contextmanager
def managed_session(settings: HealingSettings, browser_name: str = "chrome") -> Iterator[HealingSession]:
    browser_session = BrowserSession(settings)
    try:
        session = browser_session.start(browser_name)
    except WebDriverException as exc:
        pytest.skip(f"WebDriver could not start for {browser_name}: {exc}")
    try:
        yield session
    finally:
        session.driver.quit()


def open_page(session: HealingSession, html: str, directory: Path) -> None:
    page = directory / "page.html"
    page.write_text(html, encoding="utf-8")
    session.driver.get(page.resolve().as_uri())
