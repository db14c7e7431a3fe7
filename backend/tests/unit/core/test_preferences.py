# backend/tests/unit/core/test_preferences.py
"""BookingPreferences: typed accessors, dirty tracking and JSON persistence."""

import json

import pytest

from tutorslot.core.config import settings
from tutorslot.core.preferences import BookingPreferences


def test_defaults_come_from_settings():
    prefs = BookingPreferences()

    assert prefs.default_duration_minutes == settings.default_duration_minutes
    assert prefs.horizon_days == settings.default_horizon_days
    assert prefs.currency == settings.default_currency
    assert prefs.slot_limit is None
    assert not prefs.dirty


def test_set_marks_dirty_only_on_change():
    prefs = BookingPreferences({"horizon_days": 7})

    prefs.set("horizon_days", 7)
    assert not prefs.dirty

    prefs.set("horizon_days", 14)
    assert prefs.dirty
    assert prefs.horizon_days == 14


def test_remove_falls_back_to_default():
    prefs = BookingPreferences({"currency": "USD"})

    prefs.remove("currency")

    assert prefs.currency == settings.default_currency
    assert prefs.dirty


def test_persist_and_load_round_trip(tmp_path):
    path = tmp_path / "prefs" / "student-1.json"
    prefs = BookingPreferences(path=path)
    prefs.set("default_duration_minutes", 45)
    prefs.set("slot_limit", 10)

    prefs.persist()

    assert not prefs.dirty
    loaded = BookingPreferences.load(path)
    assert loaded.default_duration_minutes == 45
    assert loaded.slot_limit == 10
    assert json.loads(path.read_text()) == {"default_duration_minutes": 45, "slot_limit": 10}


def test_missing_file_loads_defaults(tmp_path):
    prefs = BookingPreferences.load(tmp_path / "absent.json")

    assert prefs.as_dict() == {}
    assert prefs.path == tmp_path / "absent.json"


def test_corrupt_file_loads_defaults(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")

    assert BookingPreferences.load(path).as_dict() == {}


def test_persist_without_path_fails():
    with pytest.raises(ValueError):
        BookingPreferences({"currency": "eur"}).persist()
