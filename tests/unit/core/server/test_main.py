"""Tests for the server entry point's loopback bind guard."""

from __future__ import annotations

import pytest

from gft.core.server import main


class _RecordingApp:
    def __init__(self) -> None:
        self.run_kwargs: dict | None = None

    def run(self, **kwargs) -> None:
        self.run_kwargs = kwargs


@pytest.fixture
def recording_app(monkeypatch: pytest.MonkeyPatch) -> _RecordingApp:
    app = _RecordingApp()
    monkeypatch.setattr(main, "create_app", lambda: app)
    return app


@pytest.mark.parametrize(
    ("host", "expected"),
    [
        ("127.0.0.1", True),
        ("127.0.0.2", True),
        ("::1", True),
        ("localhost", True),
        ("0.0.0.0", False),
        ("192.168.1.10", False),
        ("example.com", False),
    ],
)
def test_is_loopback_host(host, expected):
    assert main._is_loopback_host(host) is expected


def test_refuses_public_bind(monkeypatch, recording_app):
    monkeypatch.setenv("GFT_HOST", "0.0.0.0")
    monkeypatch.delenv("GFT_ALLOW_INSECURE_BIND", raising=False)
    with pytest.raises(RuntimeError, match="GFT_ALLOW_INSECURE_BIND"):
        main.run()
    assert recording_app.run_kwargs is None


def test_public_bind_allowed_when_overridden(monkeypatch, recording_app):
    monkeypatch.setenv("GFT_HOST", "0.0.0.0")
    monkeypatch.setenv("GFT_ALLOW_INSECURE_BIND", "true")
    main.run()
    assert recording_app.run_kwargs["host"] == "0.0.0.0"


def test_loopback_bind_uses_streamable_http(monkeypatch, recording_app):
    monkeypatch.setenv("GFT_HOST", "127.0.0.1")
    monkeypatch.setenv("GFT_PORT", "9100")
    main.run()
    assert recording_app.run_kwargs == {
        "transport": "streamable-http",
        "host": "127.0.0.1",
        "port": 9100,
    }
