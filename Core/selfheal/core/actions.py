from __future__ import annotations

import random
import re
from pathlib import Path

from selenium.common.exceptions import (
    NoSuchElementException,
    StaleElementReferenceException,
    TimeoutException,
    WebDriverException,
)
from selenium.webdriver.common.action_chains import ActionChains
from selenium.webdriver.common.keys import Keys
from selenium.webdriver.support.select import Select

from selfheal.config.schema import HealingOptions, RandomSelectOptions
from selfheal.core.exceptions import ActionFailedError, HealingExhaustedError
from selfheal.core.metadata import RawSelector, ResolvedHandle, as_target
from selfheal.core.resolver import LocatorResolver
from selfheal.core.sanitizer import sanitize_selector, to_locator
from selfheal.logging.artifacts import ArtifactManager
from selfheal.logging.audit import LogCategory
from selfheal.utils.retry import BackoffPolicy, run_with_backoff
from selfheal.utils.wait import ms_to_seconds, wait_until

FORCE_CLICK_SCRIPT = "arguments[0].click();"
SCROLL_INTO_VIEW_SCRIPT = "arguments[0].scrollIntoView({behavior: 'smooth', block: 'center'});"
OPTION_STATE_SCRIPT = r"""
const el = arguments[0];
const rect = el.getBoundingClientRect();
return {
  width: rect.width,
  height: rect.height,
  display: window.getComputedStyle(el).display,
  disabled: el.hasAttribute("disabled"),
};
"""
MARK_SELECTED_SCRIPT = "arguments[0].setAttribute('aria-selected', 'true');"
DISPATCH_CHANGE_SCRIPT = r"""
const el = arguments[0];
el.dispatchEvent(new Event("change", { bubbles: true }));
el.dispatchEvent(new Event("input", { bubbles: true }));
"""

WAIT_DEFAULTS = HealingOptions(timeout=5000)
SUPPRESSED_DEFAULTS = HealingOptions(suppress_error=True)

OPERATIONS = {
    "click": "click",
    "checkboxClick": "checkbox_click",
    "fill": "fill",
    "type": "type",
    "isVisible": "is_visible",
    "clear": "clear",
    "press": "press",
    "hover": "hover",
    "check": "check",
    "uncheck": "uncheck",
    "selectOption": "select_option",
    "getText": "get_text",
    "getAttribute": "get_attribute",
    "scrollIntoView": "scroll_into_view",
    "doubleClick": "double_click",
    "rightClick": "right_click",
    "dragAndDrop": "drag_and_drop",
    "waitForVisible": "wait_for_visible",
    "waitForHidden": "wait_for_hidden",
    "waitForEnabled": "wait_for_enabled",
    "screenshot": "screenshot",
    "clickIfVisible": "click_if_visible",
    "fillIfVisible": "fill_if_visible",
    "selectRandomOption": "select_random_option",
}


class HealingActions:
    """Browser actions routed through the healing resolver.

    Every operation resolves its target first and then runs inside a single
    error boundary: failures are logged and either suppressed (``None`` is
    returned) or re-raised as :class:`ActionFailedError`.
    """

    def __init__(self, resolver: LocatorResolver, artifact_manager: ArtifactManager | None = None) -> None:
        self.resolver = resolver
        self.driver = resolver.driver
        self.settings = resolver.settings
        self.healing_log = resolver.healing_log
        self.artifact_manager = artifact_manager or ArtifactManager(self.settings.artifacts_root)

    def perform(self, operation: str, target, *args, **kwargs):
        method_name = OPERATIONS.get(operation, operation)
        if method_name not in OPERATIONS.values():
            raise KeyError(f"Unknown operation: {operation}")
        return getattr(self, method_name)(target, *args, **kwargs)

    def click(self, target, *, force: bool = False, retries: int | None = None, options: HealingOptions | None = None):
        attempts = retries or self.settings.click_retries

        def click_element(element) -> None:
            policy = BackoffPolicy(
                max_attempts=attempts,
                delay=self.settings.click_backoff_seconds,
                escalate_on_last=not force,
                retry_on=(WebDriverException,),
            )
            run_with_backoff(
                (lambda: self._force_click(element)) if force else element.click,
                policy,
                escalate=None if force else lambda: self._escalate_click(element),
                on_failure=lambda attempt, exc: self.healing_log.log(
                    LogCategory.DIAG, f"Click attempt {attempt}/{attempts} failed: {type(exc).__name__}"
                ),
            )

        return self._run("click", target, click_element, options=options)

    def checkbox_click(self, target, *, options: HealingOptions | None = None):
        def toggle(element) -> None:
            input_type = (element.get_dom_attribute("type") or "").lower()
            if element.tag_name.lower() == "input" and input_type in ("checkbox", "radio"):
                if not element.is_selected():
                    self._force_click(element)
            elif not element.is_displayed():
                self._force_click(element)
            else:
                element.click()

        return self._run("checkboxClick", target, toggle, options=options)

    def fill(self, target, value: str, *, options: HealingOptions | None = None):
        def fill_element(element) -> None:
            element.clear()
            element.send_keys(value)

        return self._run("fill", target, fill_element, options=options)

    def type(self, target, value: str, *, options: HealingOptions | None = None):
        return self._run("type", target, lambda element: element.send_keys(value), options=options)

    def is_visible(self, target, *, options: HealingOptions | None = None):
        return self._run(
            "isVisible", target, lambda element: element.is_displayed(), defaults=SUPPRESSED_DEFAULTS, options=options
        )

    def clear(self, target, *, options: HealingOptions | None = None):
        return self._run("clear", target, lambda element: element.clear(), options=options)

    def press(self, target, key: str, *, options: HealingOptions | None = None):
        return self._run("press", target, lambda element: element.send_keys(_key(key)), options=options)

    def hover(self, target, *, options: HealingOptions | None = None):
        return self._run(
            "hover", target, lambda element: ActionChains(self.driver).move_to_element(element).perform(), options=options
        )

    def check(self, target, *, options: HealingOptions | None = None):
        def check_element(element) -> None:
            if not element.is_selected():
                element.click()

        return self._run("check", target, check_element, options=options)

    def uncheck(self, target, *, options: HealingOptions | None = None):
        def uncheck_element(element) -> None:
            if element.is_selected():
                element.click()

        return self._run("uncheck", target, uncheck_element, options=options)

    def select_option(self, target, value: str, *, options: HealingOptions | None = None):
        def select(element) -> None:
            dropdown = Select(element)
            try:
                dropdown.select_by_value(value)
            except NoSuchElementException:
                dropdown.select_by_visible_text(value)

        return self._run("selectOption", target, select, options=options)

    def get_text(self, target, *, options: HealingOptions | None = None):
        return self._run(
            "getText", target, lambda element: element.get_attribute("textContent") or "", options=options
        )

    def get_attribute(self, target, name: str, *, options: HealingOptions | None = None):
        return self._run("getAttribute", target, lambda element: element.get_dom_attribute(name), options=options)

    def scroll_into_view(self, target, *, options: HealingOptions | None = None):
        return self._run(
            "scrollIntoView",
            target,
            lambda element: self.driver.execute_script(SCROLL_INTO_VIEW_SCRIPT, element),
            options=options,
        )

    def double_click(self, target, *, options: HealingOptions | None = None):
        return self._run(
            "doubleClick", target, lambda element: ActionChains(self.driver).double_click(element).perform(), options=options
        )

    def right_click(self, target, *, options: HealingOptions | None = None):
        return self._run(
            "rightClick", target, lambda element: ActionChains(self.driver).context_click(element).perform(), options=options
        )

    def drag_and_drop(self, source, destination, *, options: HealingOptions | None = None):
        effective = options or HealingOptions()

        def drag(element) -> None:
            drop_target = self.resolver.locate(destination, effective)
            ActionChains(self.driver).drag_and_drop(element, drop_target).perform()

        return self._run("dragAndDrop", source, drag, options=effective)

    def wait_for_visible(self, target, timeout: int | None = None, *, options: HealingOptions | None = None):
        effective = options or WAIT_DEFAULTS
        limit = timeout or effective.timeout

        def wait(element) -> None:
            if not wait_until(element.is_displayed, ms_to_seconds(limit), self.settings.poll_interval_seconds):
                raise TimeoutException(f"Element not visible in {limit}ms")

        return self._run("waitForVisible", target, wait, options=effective)

    def wait_for_hidden(self, target, timeout: int | None = None, *, options: HealingOptions | None = None):
        effective = options or WAIT_DEFAULTS
        limit = timeout or effective.timeout

        def hidden(element) -> bool:
            try:
                return not element.is_displayed()
            except StaleElementReferenceException:
                return True

        def wait(element) -> None:
            if not wait_until(lambda: hidden(element), ms_to_seconds(limit), self.settings.poll_interval_seconds):
                raise TimeoutException(f"Element not hidden in {limit}ms")

        return self._run("waitForHidden", target, wait, options=effective)

    def wait_for_enabled(self, target, timeout: int | None = None, *, options: HealingOptions | None = None):
        effective = options or WAIT_DEFAULTS
        limit = timeout or effective.timeout

        def wait(element) -> None:
            if not wait_until(element.is_enabled, ms_to_seconds(limit), self.settings.poll_interval_seconds):
                raise TimeoutException(f"Element not enabled in {limit}ms")

        return self._run("waitForEnabled", target, wait, options=effective)

    def screenshot(self, target, path: str | Path | None = None, *, options: HealingOptions | None = None):
        locator = as_target(target)

        def capture(element) -> Path:
            destination = Path(path) if path else self.artifact_manager.screenshot_path(locator.selector)
            destination.parent.mkdir(parents=True, exist_ok=True)
            element.screenshot(str(destination))
            return destination

        return self._run("screenshot", locator, capture, options=options)

    def click_if_visible(self, target, *, options: HealingOptions | None = None):
        def click_element(element) -> None:
            if element.is_displayed():
                element.click()

        return self._run("clickIfVisible", target, click_element, defaults=SUPPRESSED_DEFAULTS, options=options)

    def fill_if_visible(self, target, value: str, *, options: HealingOptions | None = None):
        def fill_element(element) -> None:
            if element.is_displayed():
                element.clear()
                element.send_keys(value)

        return self._run("fillIfVisible", target, fill_element, defaults=SUPPRESSED_DEFAULTS, options=options)

    def select_random_option(self, toggle, option_target, options: RandomSelectOptions | None = None):
        """Opens ``toggle`` and clicks one usable option at random.

        The whole sequence is retried with a fixed delay; the last failure is
        re-raised once ``options.retries`` attempts are used up.
        """

        options = options or RandomSelectOptions()
        toggle_target = as_target(toggle)

        def attempt():
            toggle_element = self.resolver.locate(toggle_target, options)
            self._force_click(toggle_element)
            candidates = self._wait_for_options(as_target(option_target), options.timeout)
            usable = [candidate for candidate in candidates if self._is_selectable(candidate)]
            if not usable:
                raise NoSuchElementException("No valid options found")
            selected = random.choice(usable)
            self._force_click(selected)
            if options.trigger_events:
                self.driver.execute_script(MARK_SELECTED_SCRIPT, selected)
                self.driver.execute_script(DISPATCH_CHANGE_SCRIPT, toggle_element)
            self.healing_log.log(LogCategory.ACTION, "selectRandomOption succeeded")
            return selected

        policy = BackoffPolicy(max_attempts=options.retries, delay=self.settings.random_option_delay_seconds)

        def run():
            return run_with_backoff(
                attempt,
                policy,
                on_failure=lambda number, exc: self.healing_log.log(
                    LogCategory.DIAG, f"selectRandomOption attempt {number}/{options.retries} failed: {exc}"
                ),
            )

        return self._safe_action("selectRandomOption", toggle_target.selector, run, options)

    def _run(self, operation: str, target, action, *, defaults: HealingOptions | None = None, options=None):
        effective = options or defaults or HealingOptions()
        locator = as_target(target)

        def resolve_and_act():
            element = self.resolver.locate(locator, effective)
            return action(element)

        return self._safe_action(operation, locator.selector, resolve_and_act, effective)

    def _safe_action(self, operation: str, selector: str, action, options: HealingOptions):
        try:
            return action()
        except Exception as exc:  # noqa: BLE001 - the boundary decides between suppressing and re-raising.
            if options.suppress_error:
                self.healing_log.log(LogCategory.ACTION, f"Action failure suppressed: {operation} ({exc})")
                return None
            self.healing_log.log(LogCategory.FAILURE, f"Action failed: {operation} -> {exc}")
            if isinstance(exc, (HealingExhaustedError, ActionFailedError)):
                raise
            raise ActionFailedError(operation, selector, exc) from exc

    def _force_click(self, element) -> None:
        self.driver.execute_script(FORCE_CLICK_SCRIPT, element)

    def _escalate_click(self, element) -> None:
        self.healing_log.log(LogCategory.DIAG, "Final retry with force click")
        self._force_click(element)

    def _wait_for_options(self, option_target, timeout_ms: int) -> list:
        if isinstance(option_target, ResolvedHandle):
            return [option_target.element]
        if not isinstance(option_target, RawSelector):
            raise TypeError(f"Unsupported option target: {option_target!r}")
        for selector in dict.fromkeys((option_target.selector, sanitize_selector(option_target.selector))):
            by, value = to_locator(selector)

            def visible_options():
                try:
                    matches = self.driver.find_elements(by, value)
                    return matches if matches and matches[0].is_displayed() else None
                except (StaleElementReferenceException, WebDriverException):
                    return None

            found = wait_until(visible_options, ms_to_seconds(timeout_ms), self.settings.poll_interval_seconds)
            if found:
                return list(found)
        raise TimeoutException(f"No options appeared for {option_target.selector!r}")

    def _is_selectable(self, option) -> bool:
        state = self.driver.execute_script(OPTION_STATE_SCRIPT, option) or {}
        return (
            state.get("width", 0) > 0
            and state.get("height", 0) > 0
            and state.get("display") != "none"
            and not state.get("disabled", False)
        )


def _key(key: str) -> str:
    if len(key) <= 1:
        return key
    name = re.sub(r"(?<!^)(?=[A-Z])", "_", key).upper()
    return getattr(Keys, name, key)
