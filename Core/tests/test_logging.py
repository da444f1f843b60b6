from __future__ import annotations

import json
import logging

from selfheal.core.metadata import HealAttempt
from selfheal.logging.artifacts import ArtifactManager
from selfheal.logging.audit import HealingLog, LogCategory
from tests.helpers import fast_settings


def attempt(**overrides) -> HealAttempt:
    values = {
        "original_selector": "//input[@id='user-name']",
        "healed_selector": "input.login_username",
        "strategy": "fuzzy",
        "success": True,
        "score": 0.7,
        "tag_name": "input",
        "candidate_count": 2,
        "context_selector": "*",
    }
    values.update(overrides)
    return HealAttempt(**values)


def test_consecutive_duplicates_are_suppressed(healing_log, caplog):
    caplog.set_level(logging.INFO, logger="selfheal")

    assert healing_log.log(LogCategory.FAILURE, 'Original locator failed: "#a"') is True
    assert healing_log.log(LogCategory.FAILURE, 'Original locator failed: "#a"') is False
    assert healing_log.log(LogCategory.ATTEMPT, 'Searching alternative for "#a"') is True
    assert healing_log.log(LogCategory.FAILURE, 'Original locator failed: "#a"') is True

    assert len(healing_log.messages(LogCategory.FAILURE)) == 2
    assert caplog.messages[0] == '[HEALING][FAILURE] Original locator failed: "#a"'
    assert caplog.records[0].levelno == logging.WARNING
    assert caplog.records[1].levelno == logging.INFO


def test_durable_log_written_only_in_debug_mode(tmp_path):
    quiet = HealingLog(fast_settings(tmp_path / "quiet"))
    quiet.log(LogCategory.SUCCESS, "healed")
    quiet.record_heal(attempt())
    assert not (tmp_path / "quiet" / "artifacts").exists()

    settings = fast_settings(tmp_path, debug=True)
    healing_log = HealingLog(settings)
    healing_log.log(LogCategory.CACHE_HIT, 'Cached healed selector: "input.login_username"')

    lines = (tmp_path / "artifacts" / settings.log_file).read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    assert lines[0].endswith('[HEALING][CACHE HIT] Cached healed selector: "input.login_username"')


def test_heal_attempts_are_appended_as_jsonl(tmp_path):
    manager = ArtifactManager(tmp_path / "artifacts")
    healing_log = HealingLog(fast_settings(tmp_path, debug=True), manager)

    healing_log.record_heal(attempt())
    healing_log.record_heal(attempt(healed_selector="", success=False, score=None))

    records = [json.loads(line) for line in manager.audit_path().read_text(encoding="utf-8").splitlines()]
    assert [record["success"] for record in records] == [True, False]
    assert records[0]["healed_selector"] == "input.login_username"
    assert records[1]["score"] is None


def test_history_is_bounded(settings):
    healing_log = HealingLog(settings, history_size=3)
    for number in range(5):
        healing_log.log(LogCategory.DIAG, f"line {number}")

    assert healing_log.messages() == ["line 2", "line 3", "line 4"]


def test_artifact_paths_are_created_lazily(tmp_path):
    manager = ArtifactManager(tmp_path / "artifacts")
    assert not manager.root.exists()

    shot = manager.screenshot_path("//button[@id='login']", timestamp="20260101T000000Z")
    assert shot.name == "20260101T000000Z_button_id_login.png"
    assert shot.parent.is_dir()
    assert manager.screenshot_path("///", timestamp="1").name == "1_element.png"
    assert manager.audit_path() == manager.root / "healed_elements.jsonl"
