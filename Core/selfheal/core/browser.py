from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from selenium import webdriver
from selenium.webdriver import ChromeOptions, FirefoxOptions

from selfheal.config.schema import EnvironmentConfig, HealingSettings
from selfheal.core.actions import HealingActions
from selfheal.core.cache import ResolutionCache
from selfheal.core.resolver import LocatorResolver
from selfheal.logging.artifacts import ArtifactManager
from selfheal.logging.audit import HealingLog


def start_driver(environment: EnvironmentConfig, browser_name: str):
    """Starts a Chrome or Firefox driver through Selenium Manager."""

    normalized = browser_name.lower()
    if normalized == "chrome":
        options = ChromeOptions()
        if environment.headless:
            options.add_argument("--headless=new")
        options.add_argument("--window-size=1280,900")
        driver = webdriver.Chrome(options=options)
    elif normalized == "firefox":
        options = FirefoxOptions()
        if environment.headless:
            options.add_argument("-headless")
        driver = webdriver.Firefox(options=options)
    else:
        raise ValueError(f"Unsupported browser: {browser_name}")
    driver.set_page_load_timeout(environment.default_timeout_seconds)
    driver.implicitly_wait(0)
    return driver


@dataclass(slots=True)
class HealingSession:
    """One driver with its own resolver, cache and action surface."""

    driver: object
    resolver: LocatorResolver
    actions: HealingActions

    @property
    def cache(self) -> ResolutionCache:
        return self.resolver.cache

    @property
    def healing_log(self) -> HealingLog:
        return self.resolver.healing_log

    @classmethod
    def attach(cls, driver, settings: HealingSettings | None = None) -> HealingSession:
        settings = settings or HealingSettings()
        artifact_manager = ArtifactManager(settings.artifacts_root)
        healing_log = HealingLog(settings, artifact_manager)
        resolver = LocatorResolver(driver, settings, healing_log, ResolutionCache())
        return cls(driver=driver, resolver=resolver, actions=HealingActions(resolver, artifact_manager))


class BrowserSession:
    """Starts browsers for the configured environment and wraps them in healing sessions."""

    def __init__(self, settings: HealingSettings | None = None) -> None:
        self.settings = settings or HealingSettings()

    def start(self, browser_name: str | None = None) -> HealingSession:
        name = browser_name or self.settings.environment.browser_matrix[0]
        return HealingSession.attach(start_driver(self.settings.environment, name), self.settings)

    @contextmanager
    def open(self, browser_name: str | None = None) -> Iterator[HealingSession]:
        session = self.start(browser_name)
        try:
            yield session
        finally:
            session.driver.quit()
