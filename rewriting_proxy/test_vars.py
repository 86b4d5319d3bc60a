import dataclasses
import importlib

import pytest

import rewriting_proxy.vars as vars_module


@pytest.fixture(autouse=True)
def restore_vars(monkeypatch):
    yield
    monkeypatch.undo()
    importlib.reload(vars_module)


def test_defaults(monkeypatch):
    for name in (
        "PORT",
        "HOST",
        "PROXY_ENDPOINT",
        "SVG_PROXY_ENDPOINT",
        "CSS_PROXY_ENDPOINT",
        "PROXY_TIMEOUT",
        "LOG_LEVEL",
        "USER_AGENT",
    ):
        monkeypatch.delenv(name, raising=False)
    importlib.reload(vars_module)

    settings = vars_module.ProxySettings.from_env()

    assert settings.port == 3000
    assert settings.host == "0.0.0.0"
    assert settings.proxy_endpoint == "/q"
    assert settings.svg_endpoint == "/svg-proxy"
    assert settings.css_endpoint == "/css-proxy"
    assert settings.timeout == 30.0
    assert settings.log_level == "info"
    assert "Mozilla/5.0" in settings.user_agent


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("PROXY_ENDPOINT", "fetch/")
    monkeypatch.setenv("PROXY_TIMEOUT", "2.5")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("USER_AGENT", "Custom/1.0")
    importlib.reload(vars_module)

    settings = vars_module.ProxySettings.from_env()

    assert settings.port == 8080
    assert settings.proxy_endpoint == "/fetch"
    assert settings.timeout == 2.5
    assert settings.log_level == "debug"
    assert settings.user_agent == "Custom/1.0"


def test_settings_are_immutable():
    settings = vars_module.ProxySettings()

    with pytest.raises(dataclasses.FrozenInstanceError):
        settings.port = 1
