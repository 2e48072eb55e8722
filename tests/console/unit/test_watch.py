import pytest

from campaignsync.console import watch
from campaignsync.realtime.config import RealtimeSettings


def _base() -> RealtimeSettings:
    return RealtimeSettings(
        api_base_url="http://127.0.0.1:8000",
        realtime_url="wss://realtime.example/socket",
        reconnect_delay=2.0,
        alert_ttl=20.0,
        alert_limit=5,
        track_catalog_path=None,
        host="127.0.0.1",
        port=8000,
    )


def test_parse_args_requires_game_and_user() -> None:
    with pytest.raises(SystemExit):
        watch.parse_args(["--game-id", "g1"])

    args = watch.parse_args(["--game-id", "g1", "--user-id", "alice", "--reconnect-delay", "0.5", "--verbose"])

    assert args.game_id == "g1"
    assert args.user_id == "alice"
    assert args.reconnect_delay == 0.5
    assert args.verbose is True
    assert args.start_server is False
    assert args.server is None


def test_build_settings_keeps_base_without_overrides() -> None:
    args = watch.parse_args(["--game-id", "g1", "--user-id", "alice"])

    assert watch.build_settings(args, base=_base()) == _base()


def test_build_settings_server_override_drops_explicit_realtime_url() -> None:
    args = watch.parse_args(
        ["--game-id", "g1", "--user-id", "alice", "--server", "https://campaign.example/", "--reconnect-delay", "1"]
    )

    settings = watch.build_settings(args, base=_base())

    assert settings.api_base_url == "https://campaign.example"
    assert settings.realtime_url is None
    assert settings.reconnect_delay == 1.0
    assert settings.alert_ttl == 20.0


def test_maybe_start_server_spawns_uvicorn_for_relay(monkeypatch) -> None:
    launched: list[list[str]] = []

    class FakeProcess:
        terminated = False

        def __init__(self, command, cwd, env) -> None:
            launched.append(command)

        def terminate(self) -> None:
            FakeProcess.terminated = True

    monkeypatch.setattr(watch.subprocess, "Popen", FakeProcess)
    monkeypatch.setattr(watch, "wait_for_server", lambda url: True)

    process = watch.maybe_start_server("http://127.0.0.1:8123")

    assert isinstance(process, FakeProcess)
    assert launched[0][1:] == ["-m", "uvicorn", "campaignsync.backend.relay:app", "--host", "127.0.0.1", "--port", "8123"]


def test_maybe_start_server_terminates_process_that_never_answers(monkeypatch) -> None:
    class FakeProcess:
        terminated = False

        def __init__(self, command, cwd, env) -> None:
            pass

        def terminate(self) -> None:
            FakeProcess.terminated = True

    monkeypatch.setattr(watch.subprocess, "Popen", FakeProcess)
    monkeypatch.setattr(watch, "wait_for_server", lambda url: False)

    assert watch.maybe_start_server("http://127.0.0.1:8123") is None
    assert FakeProcess.terminated is True


def test_wait_for_server_polls_until_docs_answer() -> None:
    httpx = pytest.importorskip("httpx")
    statuses = iter([503, 503, 200])
    paths: list[str] = []

    def handler(request):
        paths.append(request.url.path)
        return httpx.Response(next(statuses))

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        ready = watch.wait_for_server("http://127.0.0.1:8123", timeout_s=5.0, client=client)

    assert ready is True
    assert paths == ["/docs", "/docs", "/docs"]


def test_wait_for_server_gives_up_when_relay_is_unreachable() -> None:
    httpx = pytest.importorskip("httpx")

    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        ready = watch.wait_for_server("http://127.0.0.1:8123", timeout_s=0.3, client=client)

    assert ready is False
