from campaignsync.realtime.config import load_settings, resolve_realtime_url

from fakes import make_settings


def test_load_settings_reads_expected_env(monkeypatch) -> None:
    monkeypatch.setenv("CAMPAIGNSYNC_API_URL", "https://campaign.example")
    monkeypatch.setenv("CAMPAIGNSYNC_REALTIME_URL", "wss://rt.example")
    monkeypatch.setenv("CAMPAIGNSYNC_RECONNECT_DELAY", "5")
    monkeypatch.setenv("CAMPAIGNSYNC_ALERT_TTL", "7.5")
    monkeypatch.setenv("CAMPAIGNSYNC_ALERT_LIMIT", "3")
    monkeypatch.setenv("CAMPAIGNSYNC_TRACK_CATALOG", "/srv/tracks.json")
    monkeypatch.setenv("CAMPAIGNSYNC_HOST", "0.0.0.0")
    monkeypatch.setenv("CAMPAIGNSYNC_PORT", "9000")

    settings = load_settings()

    assert settings.api_base_url == "https://campaign.example"
    assert settings.realtime_url == "wss://rt.example"
    assert settings.reconnect_delay == 5.0
    assert settings.alert_ttl == 7.5
    assert settings.alert_limit == 3
    assert settings.track_catalog_path == "/srv/tracks.json"
    assert settings.host == "0.0.0.0"
    assert settings.port == 9000


def test_load_settings_applies_defaults(monkeypatch) -> None:
    for name in (
        "CAMPAIGNSYNC_API_URL",
        "CAMPAIGNSYNC_REALTIME_URL",
        "CAMPAIGNSYNC_RECONNECT_DELAY",
        "CAMPAIGNSYNC_ALERT_TTL",
        "CAMPAIGNSYNC_ALERT_LIMIT",
        "CAMPAIGNSYNC_TRACK_CATALOG",
        "CAMPAIGNSYNC_HOST",
        "CAMPAIGNSYNC_PORT",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.api_base_url == "http://127.0.0.1:8000"
    assert settings.realtime_url is None
    assert settings.reconnect_delay == 2.0
    assert settings.alert_ttl == 20.0
    assert settings.alert_limit == 5
    assert settings.track_catalog_path is None
    assert settings.port == 8000


def test_resolve_realtime_url_converts_http_base() -> None:
    assert resolve_realtime_url(make_settings(api_base_url="http://relay.test")) == "ws://relay.test/ws"
    assert resolve_realtime_url(make_settings(api_base_url="https://relay.test/app/")) == "wss://relay.test/app/ws"


def test_resolve_realtime_url_prefers_explicit_realtime_base_and_adds_user() -> None:
    settings = make_settings(realtime_url="wss://rt.example")

    assert resolve_realtime_url(settings, path="socket", user_id="alice") == "wss://rt.example/socket?userId=alice"
