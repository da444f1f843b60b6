from __future__ import annotations

from collections import deque
from typing import Any

from selenium.common.exceptions import NoSuchShadowRootException, WebDriverException
from selenium.webdriver.common.by import By

from selfheal.config.schema import DEFAULT_CONTEXT_SELECTOR, HealingSettings
from selfheal.core.metadata import ElementSignature
from selfheal.core.sanitizer import to_locator
from selfheal.logging.audit import HealingLog, LogCategory

DESCRIBE_ELEMENT_SCRIPT = r"""
const el = arguments[0];
const attributes = {};
for (const name of el.getAttributeNames()) {
  attributes[name] = el.getAttribute(name) || "";
}
const className = typeof el.className === "string" ? el.className : (el.getAttribute("class") || "");
return {
  tagName: el.tagName.toLowerCase(),
  id: el.id || null,
  name: el.getAttribute("name") || null,
  className: className || null,
  type: el.getAttribute("type") || null,
  textContent: (el.textContent || "").trim() || null,
  attributes: attributes,
  hasShadowRoot: Boolean(el.shadowRoot),
};
"""

FRAME_SELECTOR = "iframe, frame"
FRAME_ELEMENT_SCRIPT = "return window.frameElement;"

ALLOWED_TAGS = frozenset({"input", "textarea", "select", "button", "a", "label"})
TEXT_INPUT_TYPES = frozenset({"email", "text", "password", "search", "number"})
INTERACTIVE_ROLES = frozenset({"textbox", "combobox", "button", "link"})
STRUCTURAL_TAGS = frozenset(
    {"div", "span", "p", "section", "article", "header", "footer", "main", "h1", "h2", "h3", "h4", "h5", "h6"}
)


def is_interactive(description: dict[str, Any]) -> bool:
    """Strict allow-list: interactive tags, text-like inputs or interactive ARIA roles."""

    tag = (description.get("tagName") or "").lower()
    if tag in STRUCTURAL_TAGS:
        return False
    input_type = (description.get("type") or "").lower()
    role_tokens = set((description.get("attributes") or {}).get("role", "").lower().split())
    return tag in ALLOWED_TAGS or input_type in TEXT_INPUT_TYPES or bool(role_tokens & INTERACTIVE_ROLES)


def build_signature(description: dict[str, Any], handle, frame_path: tuple = ()) -> ElementSignature:
    return ElementSignature(
        tag_name=(description.get("tagName") or "").lower(),
        id=description.get("id") or None,
        name=description.get("name") or None,
        class_name=description.get("className") or None,
        type=description.get("type") or None,
        text_content=description.get("textContent") or None,
        attributes={str(key): str(value) for key, value in (description.get("attributes") or {}).items()},
        handle=handle,
        frame_path=frame_path,
    )


class CandidateCollector:
    """Extracts interactive element signatures from the live page.

    Shadow roots and frames are walked with explicit worklists bounded by
    ``settings.max_traversal_depth``; element handles already seen in a pass
    are skipped.
    """

    def __init__(self, driver, healing_log: HealingLog, settings: HealingSettings | None = None) -> None:
        self.driver = driver
        self.healing_log = healing_log
        self.settings = settings or HealingSettings()

    def collect(
        self, root=None, context_selector: str = DEFAULT_CONTEXT_SELECTOR, frame_path: tuple = ()
    ) -> list[ElementSignature]:
        """Signatures under ``root`` (the current document by default), shadow roots included."""

        by, value = to_locator(context_selector)
        pending = deque([(root if root is not None else self.driver, by, value, 0)])
        visited: set[str] = set()
        signatures: list[ElementSignature] = []

        while pending and len(signatures) < self.settings.max_candidates:
            current_root, current_by, current_value, depth = pending.popleft()
            try:
                elements = current_root.find_elements(current_by, current_value)
            except WebDriverException as exc:
                self.healing_log.log(LogCategory.DIAG, f"Skipping unreadable root at depth {depth}: {type(exc).__name__}")
                continue
            for element in elements:
                handle_id = getattr(element, "id", None) or str(id(element))
                if handle_id in visited:
                    continue
                visited.add(handle_id)
                description = self._describe(element)
                if description is None:
                    continue
                if is_interactive(description):
                    signatures.append(build_signature(description, element, frame_path))
                if description.get("hasShadowRoot") and depth < self.settings.max_traversal_depth:
                    shadow_root = self._shadow_root(element)
                    if shadow_root is not None:
                        pending.append((shadow_root, By.CSS_SELECTOR, DEFAULT_CONTEXT_SELECTOR, depth + 1))
                if len(signatures) >= self.settings.max_candidates:
                    break
        return signatures

    def search_candidates(
        self, context_selector: str = DEFAULT_CONTEXT_SELECTOR, origin: tuple | None = None
    ) -> list[ElementSignature]:
        """Collects from the top document and then from every reachable sub-frame.

        The driver is returned to ``origin`` (the caller's frame, traced with
        :meth:`frame_path` when not given) once collection ends.
        """

        if origin is None:
            origin = self.frame_path()
        try:
            self.driver.switch_to.default_content()
            signatures = self.collect(context_selector=context_selector)
            pending = deque((frame,) for frame in self._frames())
            visited: set[str] = set()
            while pending:
                path = pending.popleft()
                frame_id = getattr(path[-1], "id", None) or str(id(path[-1]))
                if frame_id in visited:
                    continue
                visited.add(frame_id)
                try:
                    self.enter(path)
                    signatures.extend(self.collect(context_selector=context_selector, frame_path=path))
                    if len(path) < self.settings.max_traversal_depth:
                        pending.extend(path + (child,) for child in self._frames())
                except WebDriverException as exc:
                    self.healing_log.log(LogCategory.DIAG, f"Skipping frame at depth {len(path)}: {type(exc).__name__}")
                    continue
        finally:
            self.restore(origin)
        return signatures

    def frame_path(self) -> tuple:
        """Frame elements from the top document down to the driver's current frame.

        The path is traced by walking up through ``window.frameElement`` and the
        driver is put back where it was afterwards.
        """

        path = []
        try:
            frame = self.driver.execute_script(FRAME_ELEMENT_SCRIPT)
            while frame is not None and len(path) < self.settings.max_traversal_depth:
                path.append(frame)
                self.driver.switch_to.parent_frame()
                frame = self.driver.execute_script(FRAME_ELEMENT_SCRIPT)
        except WebDriverException as exc:
            self.healing_log.log(LogCategory.DIAG, f"Could not trace the current frame: {type(exc).__name__}")
        origin = tuple(reversed(path))
        if origin:
            self.restore(origin)
        return origin

    def enter(self, path: tuple) -> None:
        self.driver.switch_to.default_content()
        for frame in path:
            self.driver.switch_to.frame(frame)

    def restore(self, path: tuple) -> bool:
        try:
            self.enter(path)
        except WebDriverException as exc:
            self.healing_log.log(LogCategory.FAILURE, f"Could not return to frame at depth {len(path)}: {type(exc).__name__}")
            return False
        return True

    def _describe(self, element) -> dict[str, Any] | None:
        try:
            description = self.driver.execute_script(DESCRIBE_ELEMENT_SCRIPT, element)
        except WebDriverException as exc:
            self.healing_log.log(LogCategory.DIAG, f"Skipping element that could not be read: {type(exc).__name__}")
            return None
        return description or None

    def _shadow_root(self, element):
        try:
            return element.shadow_root
        except (NoSuchShadowRootException, WebDriverException):
            return None

    def _frames(self) -> list:
        try:
            return list(self.driver.find_elements(By.CSS_SELECTOR, FRAME_SELECTOR))
        except WebDriverException:
            return []
