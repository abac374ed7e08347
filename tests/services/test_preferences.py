"""Tests for notification preferences."""

import json
from unittest.mock import MagicMock

import pytest

from collab_hub.services.preferences import (
    PREFERENCES_KEY,
    NotificationPreferences,
    PreferencesService,
    PreferencesValidationError,
    validate_update,
)


class TestDefaults:

    def test_all_booleans_default_true(self):
        prefs = NotificationPreferences()
        assert prefs.desktop_notifications is True
        assert prefs.sound_alerts is True
        assert prefs.email_digest is True
        assert prefs.notify_on_messages is True
        assert prefs.notify_on_task_assignment is True
        assert prefs.notify_on_critical_triggers is True

    def test_volume_and_frequency_defaults(self):
        prefs = NotificationPreferences()
        assert prefs.sound_volume == 0.5
        assert prefs.email_frequency == "daily"

    def test_absent_record_equals_defaults(self, local_store):
        service = PreferencesService(local_store)
        assert service.current == NotificationPreferences()


class TestFromStored:

    def test_non_dict_falls_back_to_defaults(self):
        assert NotificationPreferences.from_stored("oops") == NotificationPreferences()

    def test_bad_fields_fall_back_individually(self):
        prefs = NotificationPreferences.from_stored({
            "sound_alerts": False,
            "desktop_notifications": "yes",
            "sound_volume": 7,
            "email_frequency": "never",
        })
        assert prefs.sound_alerts is False
        assert prefs.desktop_notifications is True
        assert prefs.sound_volume == 0.5
        assert prefs.email_frequency == "daily"

    def test_malformed_stored_json_uses_defaults(self, local_store):
        local_store.set(PREFERENCES_KEY, "{not json")
        assert PreferencesService(local_store).current == NotificationPreferences()


class TestValidateUpdate:

    def test_rejects_unknown_field(self):
        with pytest.raises(PreferencesValidationError) as exc:
            validate_update({"carrier_pigeon": True})
        assert exc.value.field_name == "carrier_pigeon"

    def test_rejects_non_boolean_toggle(self):
        with pytest.raises(PreferencesValidationError):
            validate_update({"sound_alerts": "true"})

    @pytest.mark.parametrize("volume", [-0.1, 1.5, "loud", True])
    def test_rejects_bad_volume(self, volume):
        with pytest.raises(PreferencesValidationError):
            validate_update({"sound_volume": volume})

    def test_accepts_integer_volume_bounds(self):
        assert validate_update({"sound_volume": 1}) == {"sound_volume": 1.0}
        assert validate_update({"sound_volume": 0}) == {"sound_volume": 0.0}

    def test_rejects_unknown_frequency(self):
        with pytest.raises(PreferencesValidationError):
            validate_update({"email_frequency": "fortnightly"})


class TestSave:

    def test_save_merges_and_persists(self, local_store):
        service = PreferencesService(local_store)
        saved = service.save({"sound_alerts": False, "sound_volume": 0.2})

        assert saved.sound_alerts is False
        assert saved.sound_volume == 0.2
        assert saved.desktop_notifications is True
        stored = json.loads(local_store.get(PREFERENCES_KEY))
        assert stored["sound_alerts"] is False

    def test_saved_values_load_in_new_session(self, local_store):
        PreferencesService(local_store).save({"email_frequency": "weekly"})
        assert PreferencesService(local_store).current.email_frequency == "weekly"

    def test_invalid_update_saves_nothing(self, local_store):
        service = PreferencesService(local_store)
        with pytest.raises(PreferencesValidationError):
            service.save({"sound_alerts": False, "sound_volume": 3})
        assert service.current.sound_alerts is True
        assert local_store.get(PREFERENCES_KEY) is None

    def test_enabling_desktop_requests_permission_once(self, local_store):
        permission = MagicMock()
        permission.state = "default"
        service = PreferencesService(local_store, desktop_permission=permission)

        service.save({"desktop_notifications": True})
        permission.request_permission.assert_called_once()

    def test_resolved_permission_is_not_requested_again(self, local_store):
        permission = MagicMock()
        permission.state = "denied"
        service = PreferencesService(local_store, desktop_permission=permission)

        service.save({"desktop_notifications": True})
        permission.request_permission.assert_not_called()


class TestCategoryEnabled:

    def test_maps_categories_to_toggles(self, local_store):
        service = PreferencesService(local_store)
        service.save({"notify_on_task_assignment": False})
        assert service.category_enabled("message") is True
        assert service.category_enabled("task") is False
        assert service.category_enabled("critical") is True

    def test_unknown_category_is_disabled(self, local_store):
        assert PreferencesService(local_store).category_enabled("gossip") is False
