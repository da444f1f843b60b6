from __future__ import annotations

from selenium.common.exceptions import (
    InvalidSelectorException,
    StaleElementReferenceException,
    WebDriverException,
)

from selfheal.config.schema import HealingOptions, HealingSettings
from selfheal.core.cache import ResolutionCache
from selfheal.core.exceptions import HealingExhaustedError, NoCandidatesError
from selfheal.core.metadata import (
    ElementSignature,
    HealAttempt,
    RawSelector,
    Resolution,
    ResolvedHandle,
    Strategy,
    as_target,
)
from selfheal.core.sanitizer import SelectorSanitizer, to_locator
from selfheal.logging.audit import HealingLog, LogCategory
from selfheal.utils.dom_extract import CandidateCollector
from selfheal.utils.scoring import generate_selector_from_signature, rank_signatures
from selfheal.utils.wait import ms_to_seconds, wait_until

IS_CONNECTED_SCRIPT = "return Boolean(arguments[0].isConnected);"


class LocatorResolver:
    """Resolves a selector to a live element through four ordered strategies.

    Direct, sanitized, cached and fuzzy lookups are tried in that order and
    the first usable element wins. The cache belongs to this instance.

    Fuzzy candidates are accepted through the handle collected for them, so
    shadow-root elements qualify. A candidate from another frame leaves the
    driver in that frame; every other outcome returns it to the caller's frame.
    """

    def __init__(
        self,
        driver,
        settings: HealingSettings | None = None,
        healing_log: HealingLog | None = None,
        cache: ResolutionCache | None = None,
        sanitizer: SelectorSanitizer | None = None,
        collector: CandidateCollector | None = None,
    ) -> None:
        self.driver = driver
        self.settings = settings or HealingSettings()
        self.healing_log = healing_log or HealingLog(self.settings)
        self.cache = cache if cache is not None else ResolutionCache()
        self.sanitizer = sanitizer or SelectorSanitizer(driver, self.healing_log)
        self.collector = collector or CandidateCollector(driver, self.healing_log, self.settings)

    def locate(self, target, options: HealingOptions | None = None):
        return self.resolve(target, options).element

    def resolve(self, target, options: HealingOptions | None = None) -> Resolution:
        options = options or HealingOptions()
        target = as_target(target)
        if isinstance(target, ResolvedHandle):
            return Resolution(target.element, Strategy.HANDLE, target.selector)
        if isinstance(target, RawSelector):
            return self._resolve_selector(target.selector, options)
        raise TypeError(f"Unsupported locator target: {target!r}")

    def _resolve_selector(self, selector: str, options: HealingOptions) -> Resolution:
        for strategy in (self._try_direct, self._try_sanitized, self._try_cached):
            resolution = strategy(selector, options)
            if resolution is not None:
                return resolution
        try:
            resolution = self._try_fuzzy(selector, options)
        except NoCandidatesError as exc:
            self.healing_log.log(LogCategory.FAILURE, str(exc))
            raise HealingExhaustedError(selector) from exc
        if resolution is not None:
            return resolution
        self.healing_log.log(LogCategory.FAILURE, f'Healing failed completely for "{selector}"')
        raise HealingExhaustedError(selector)

    def _try_direct(self, selector: str, options: HealingOptions) -> Resolution | None:
        element = self.wait_for_visible(selector, self._short_timeout(options))
        if element is None:
            self.healing_log.log(LogCategory.FAILURE, f'Original locator failed: "{selector}"')
            return None
        return Resolution(element, Strategy.DIRECT, selector)

    def _try_sanitized(self, selector: str, options: HealingOptions) -> Resolution | None:
        sanitized = self.sanitizer.sanitize(selector)
        if sanitized == selector.strip():
            return None
        element = self.wait_for_visible(sanitized, self._short_timeout(options))
        if element is None:
            return None
        self.healing_log.log(LogCategory.SANITIZED, f'Using improved version: "{sanitized}"')
        return Resolution(element, Strategy.SANITIZED, sanitized)

    def _try_cached(self, selector: str, options: HealingOptions) -> Resolution | None:
        cached = self.cache.get(selector)
        if cached is None:
            return None
        if self.wait_for_visible(cached, self._short_timeout(options)) is None:
            self.healing_log.log(LogCategory.CACHE_EVICT, f'Cached heal broken: "{cached}" removed from cache')
        else:
            element = self._first_enabled(cached)
            if element is not None:
                self.healing_log.log(LogCategory.CACHE_HIT, f'Cached healed selector: "{cached}"')
                return Resolution(element, Strategy.CACHED, cached)
            self.healing_log.log(LogCategory.CACHE_EVICT, f'Cached heal invalid: "{cached}" removed from cache')
        self.cache.evict(selector)
        return None

    def _try_fuzzy(self, selector: str, options: HealingOptions) -> Resolution | None:
        self.healing_log.log(LogCategory.ATTEMPT, f'Searching alternative for "{selector}"')
        origin = self.collector.frame_path()
        resolution = None
        try:
            resolution = self._heal(selector, options, origin)
        finally:
            if resolution is None:
                self.collector.restore(origin)
        return resolution

    def _heal(self, selector: str, options: HealingOptions, origin: tuple) -> Resolution | None:
        try:
            signatures = self.collector.search_candidates(options.context_selector, origin)
        except WebDriverException as exc:
            self.healing_log.log(LogCategory.FAILURE, f"Candidate collection failed: {type(exc).__name__}")
            return None
        if not signatures:
            raise NoCandidatesError(selector)

        threshold = self.settings.min_threshold
        sole_candidate = len(signatures) == 1
        timeout = min(options.timeout, self.settings.medium_timeout_ms)
        for match in rank_signatures(selector, signatures, threshold):
            if match.score < threshold and not sole_candidate:
                self.healing_log.log(
                    LogCategory.SKIP, f'"{selector}" - confidence too low ({match.score:.3f})'
                )
                continue
            healed_selector = generate_selector_from_signature(match.signature)
            element = self._accept_candidate(match.signature, timeout)
            if element is None:
                self.healing_log.log(LogCategory.DIAG, f'Candidate "{healed_selector}" is not interactable')
                continue
            if match.signature.frame_path != origin:
                self.healing_log.log(
                    LogCategory.DIAG,
                    f'Switched to frame at depth {len(match.signature.frame_path)} for "{healed_selector}"',
                )
            self.cache.put(selector, healed_selector)
            self.healing_log.log(
                LogCategory.SUCCESS,
                f'Original locator broken -> using healed locator: "{healed_selector}" '
                f"(tag: {match.signature.tag_name}, confidence: {match.score:.3f})",
            )
            self._record(selector, healed_selector, match.score, match.signature.tag_name, len(signatures), options)
            return Resolution(element, Strategy.FUZZY, healed_selector, match.score)

        self._record(selector, "", None, "", len(signatures), options)
        return None

    def _accept_candidate(self, signature: ElementSignature, timeout_ms: int):
        """The candidate's own handle, once interactable inside the frame it was collected from."""

        handle = signature.handle
        if handle is None or not self.collector.restore(signature.frame_path):
            return None
        ready = wait_until(
            lambda: self.is_interactable(handle), ms_to_seconds(timeout_ms), self.settings.poll_interval_seconds
        )
        return handle if ready else None

    def wait_for_visible(self, selector: str, timeout_ms: int):
        """First element matching ``selector`` once it is displayed, else None."""

        by, value = to_locator(selector)

        def first_visible():
            try:
                matches = self.driver.find_elements(by, value)
                if matches and matches[0].is_displayed():
                    return matches[0]
            except StaleElementReferenceException:
                return None
            return None

        try:
            return wait_until(first_visible, ms_to_seconds(timeout_ms), self.settings.poll_interval_seconds)
        except InvalidSelectorException:
            self.healing_log.log(LogCategory.DIAG, f'Invalid selector: "{selector}"')
            return None
        except WebDriverException as exc:
            self.healing_log.log(LogCategory.DIAG, f'Lookup of "{selector}" failed: {type(exc).__name__}')
            return None

    def is_interactable(self, element) -> bool:
        try:
            return bool(
                element.is_displayed()
                and element.is_enabled()
                and self.driver.execute_script(IS_CONNECTED_SCRIPT, element)
            )
        except WebDriverException:
            return False

    def _first_enabled(self, selector: str):
        by, value = to_locator(selector)
        try:
            matches = self.driver.find_elements(by, value)
            if matches and matches[0].is_enabled():
                return matches[0]
        except WebDriverException:
            return None
        return None

    def _short_timeout(self, options: HealingOptions) -> int:
        return min(options.timeout, self.settings.short_timeout_ms)

    def _record(self, selector, healed_selector, score, tag_name, candidate_count, options) -> None:
        self.healing_log.record_heal(
            HealAttempt(
                original_selector=selector,
                healed_selector=healed_selector,
                strategy=Strategy.FUZZY.value,
                success=bool(healed_selector),
                score=score,
                tag_name=tag_name,
                candidate_count=candidate_count,
                context_selector=options.context_selector,
            )
        )
