import entrypoint
from constants import HEARTBEAT_INTERVAL_SECONDS


def test_main_enables_protocol_pings(monkeypatch):
    calls = []
    monkeypatch.setattr(entrypoint.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))

    entrypoint.main()

    assert len(calls) == 1
    app, kwargs = calls[0]
    assert app is entrypoint.app
    assert kwargs["ws_ping_interval"] == HEARTBEAT_INTERVAL_SECONDS
    assert kwargs["ws_ping_timeout"] == HEARTBEAT_INTERVAL_SECONDS
    assert kwargs["log_config"] is None
