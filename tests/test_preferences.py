from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import NOW
from jobalerts.models import AccessPreferences, IngestResult
from jobalerts.preferences import ACCESS_PREFIX, PreferenceStore, clamp_threshold

pytestmark = pytest.mark.unit


def test_threshold_defaults_to_settings(preferences):
    assert preferences.get_threshold() == 80


@pytest.mark.parametrize("value, expected", [(150, 100), (-5, 0), (70, 70)])
def test_threshold_is_clamped(preferences, kv, value, expected):
    assert preferences.set_threshold(value) == expected
    assert kv.get("match_threshold") == expected
    assert preferences.get_threshold() == expected


def test_clamp_threshold_accepts_strings():
    assert clamp_threshold("85") == 85


def test_default_access_preferences(preferences):
    linkedin = preferences.get_access_preferences("LinkedIn")
    assert linkedin.min_delay_ms == 3000
    assert linkedin.max_concurrent == 1
    assert linkedin.max_results_per_query == 50
    assert preferences.get_access_preferences("indeed").min_delay_ms == 2000


def test_writes_are_clamped_before_persisting(preferences, kv):
    saved = preferences.set_access_preferences(
        "linkedin", {"min_delay_ms": 0, "max_concurrent": 10, "max_results_per_query": 500}
    )
    assert saved.min_delay_ms == 500
    assert saved.max_concurrent == 3
    assert saved.max_results_per_query == 100

    stored = kv.get(ACCESS_PREFIX + "linkedin")
    assert stored["min_delay_ms"] == 500
    assert stored["max_concurrent"] == 3
    assert preferences.get_access_preferences("linkedin") == saved


def test_partial_update_keeps_other_fields(preferences):
    preferences.set_access_preferences("linkedin", {"enabled": False})
    prefs = preferences.get_access_preferences("linkedin")
    assert prefs.enabled is False
    assert prefs.min_delay_ms == 3000


def test_safety_flags_cannot_be_switched_off(preferences):
    saved = preferences.set_access_preferences(
        "indeed", AccessPreferences(require_safety_measures=False, respect_rate_limits=False)
    )
    assert saved.require_safety_measures and saved.respect_rate_limits


def test_unknown_preference_key(preferences):
    with pytest.raises(ValueError):
        preferences.set_access_preferences("linkedin", {"turbo": True})


def test_last_processed_and_default_since(preferences, clock):
    assert preferences.get_last_processed() is None
    assert preferences.default_since() == NOW - timedelta(days=7)

    marker = NOW - timedelta(hours=3)
    preferences.set_last_processed(marker)
    assert preferences.get_last_processed() == marker
    assert preferences.default_since() == marker


def test_record_run_accumulates_total(preferences):
    preferences.record_run(3, IngestResult(processed=3, found=4, added=2, below_threshold=1), 80)
    stats = preferences.record_run(2, IngestResult(processed=2, found=1, added=1), 75)
    assert stats["total_processed"] == 5
    assert stats["emails_processed"] == 2
    assert stats["jobs_added"] == 1
    assert stats["match_threshold"] == 75
    assert preferences.get_stats() == stats


def test_store_is_injected(kv, settings):
    first = PreferenceStore(kv, settings)
    first.set_threshold(65)
    assert PreferenceStore(kv, settings).get_threshold() == 65
