import pytest
from pydantic import ValidationError
from matchpulse.core.config import Settings
from matchpulse.ingestion import ConnectorOptions


def make_settings(**kwargs):
    return Settings(_env_file=None, **kwargs)


class TestSettings:
    def test_defaults(self):
        settings = make_settings()
        assert settings.reconnect_delay == 3.0
        assert settings.max_reconnect_attempts == 10
        assert settings.heartbeat_interval == 30.0
        assert settings.dedup_ttl == 5.0
        assert settings.backpressure == "block"
        assert settings.enabled_events == {"goals": True, "red_cards": True, "yellow_cards": True}
        assert settings.sources_config == {"sofascore": None, "bwin": None, "bet365": None}

    def test_validators_normalize_case(self):
        settings = make_settings(log_level="debug", backpressure="DROP_OLDEST", environment="Staging")
        assert settings.log_level == "DEBUG"
        assert settings.backpressure == "drop_oldest"
        assert settings.environment == "staging"

    @pytest.mark.parametrize("field,value", [
        ("log_level", "LOUD"),
        ("backpressure", "spill"),
        ("environment", "qa"),
        ("dedup_ttl", 0),
        ("max_reconnect_attempts", 0),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            make_settings(**{field: value})

    def test_csv_lists(self):
        settings = make_settings(sofascore_match_ids="11, 12,,13", bwin_subscriptions="")
        assert settings.match_id_list == ["11", "12", "13"]
        assert settings.subscription_list == []

    def test_connector_options(self):
        options = make_settings(reconnect_delay=2, reconnect_backoff_cap=4).connector_options()
        assert isinstance(options, ConnectorOptions)
        assert options.backoff_delay(10) == 8
        assert options.liveness_threshold == 60

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("DEDUP_TTL", "2.5")
        monkeypatch.setenv("ENABLE_YELLOW_CARDS", "false")
        monkeypatch.setenv("SOFASCORE_WS_URL", "wss://example.invalid/ws")
        settings = make_settings()
        assert settings.dedup_ttl == 2.5
        assert settings.enabled_events["yellow_cards"] is False
        assert settings.sources_config["sofascore"] == "wss://example.invalid/ws"

    def test_display_dict_groups(self):
        display = make_settings().to_display_dict()
        assert set(display) == {"app", "sources", "connectors", "pipeline", "alerts"}
        assert display["pipeline"]["dedup_ttl"] == 5.0
