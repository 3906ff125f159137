from __future__ import annotations

import json
import os

import pytest

import settings


def _write(path, data) -> None:
    path.write_text(json.dumps(data), encoding="utf-8")


def test_defaults_from_empty_config() -> None:
    config = settings.build_forwarding_config({"forwarding": {"device_name": "phone"}})
    assert config.forwarding_enabled
    assert config.webhook_url == ""
    assert config.device_name == "phone"
    assert config.dedupe.window_seconds == 45
    assert config.rate_limit.max_per_window == 5
    assert config.rate_limit.aggregate_window_seconds == 10
    assert not config.filter.enabled
    assert not config.quiet_hours.enabled
    assert config.embed.max_field_length == 900


def test_full_config_is_parsed() -> None:
    raw = {
        "forwarding": {
            "webhook_url": " https://default ",
            "selected_sources": ["com.a", ""],
            "source_webhooks": {"com.a": " https://a "},
            "device_name": "phone",
        },
        "templates": {"default": "{title}", "per_source": {"com.a": "{text}"}},
        "filter": {"enabled": True, "keywords": ["x", " "], "channel_ids": ["c1"], "min_importance": 2},
        "quiet_hours": {"enabled": True, "start": "23:15", "end": "06:45", "days_of_week": [1, 7]},
        "routing_rules": [{"name": "ops", "keywords": ["down"], "webhooks": ["https://ops"]}, {}],
    }
    config = settings.build_forwarding_config(raw)

    assert config.webhook_url == "https://default"
    assert config.selected_sources == frozenset({"com.a"})
    assert config.source_webhooks == {"com.a": "https://a"}
    assert config.default_template == "{title}"
    assert config.source_templates == {"com.a": "{text}"}
    assert config.filter.keywords == ("x",)
    assert config.filter.channel_ids == frozenset({"c1"})
    assert config.quiet_hours.start_hour == 23 and config.quiet_hours.start_minute == 15
    assert config.quiet_hours.end_hour == 6 and config.quiet_hours.end_minute == 45
    assert config.quiet_hours.days_of_week == frozenset({1, 7})
    assert [rule.name for rule in config.routing_rules] == ["ops", "rule-2"]
    assert config.routing_rules[0].destination_urls == ("https://ops",)
    assert settings.all_webhook_urls(config) == {"https://default", "https://a", "https://ops"}


@pytest.mark.parametrize("value", ["7", "25:00", "aa:bb", "12:60"])
def test_parse_hhmm_rejects_bad_values(value) -> None:
    with pytest.raises(ValueError):
        settings.parse_hhmm(value)


def test_invalid_day_is_rejected() -> None:
    with pytest.raises(ValueError):
        settings.build_forwarding_config({"quiet_hours": {"days_of_week": [0]}})


def test_missing_config_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        settings.load_json_config(str(tmp_path / "nope.json"))


def test_delivery_and_history_settings() -> None:
    assert settings.history_retention_days({}) == 30
    assert settings.history_retention_days({"history": {"retention_days": -1}}) == -1
    delivery = settings.delivery_settings({"delivery": {"backoff_base_seconds": 2}})
    assert delivery["backoff_base_seconds"] == 2
    assert delivery["max_backoff_seconds"] == 5 * 60 * 60


def test_provider_reloads_and_keeps_last_good_snapshot(tmp_path) -> None:
    path = tmp_path / "config.json"
    _write(path, {"forwarding": {"webhook_url": "https://one", "device_name": "d"}})
    provider = settings.SettingsProvider(str(path))

    first = provider.snapshot()
    assert first.webhook_url == "https://one"
    assert provider.snapshot() is first

    _write(path, {"forwarding": {"webhook_url": "https://two", "device_name": "d"}})
    os.utime(path, (1, 1))
    assert provider.snapshot().webhook_url == "https://two"

    path.write_text("{broken", encoding="utf-8")
    os.utime(path, (2, 2))
    assert provider.snapshot().webhook_url == "https://two"


def test_provider_without_any_good_config_raises(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{broken", encoding="utf-8")
    with pytest.raises(ValueError):
        settings.SettingsProvider(str(path)).snapshot()
