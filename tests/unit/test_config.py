from steamchat.utils.config import API_HOST, COM_HOST, HTTP_TIMEOUT_DEFAULT, USER_AGENT, load_config


def _clear_env(monkeypatch):
    for name in (
        "STEAM_API_HOST",
        "STEAM_COM_HOST",
        "STEAMCHAT_HTTP_TIMEOUT",
        "STEAMCHAT_USER_AGENT",
        "STEAMCHAT_UMQID",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch):
    _clear_env(monkeypatch)

    config = load_config()

    assert config.api_host == API_HOST
    assert config.com_host == COM_HOST
    assert config.user_agent == USER_AGENT
    assert config.http_timeout == HTTP_TIMEOUT_DEFAULT
    assert config.umqid is None


def test_environment_overrides(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("STEAM_API_HOST", " api.example.test ")
    monkeypatch.setenv("STEAM_COM_HOST", "community.example.test")
    monkeypatch.setenv("STEAMCHAT_HTTP_TIMEOUT", "90")
    monkeypatch.setenv("STEAMCHAT_USER_AGENT", "agent/2")
    monkeypatch.setenv("STEAMCHAT_UMQID", "777")

    config = load_config()

    assert config.api_host == "api.example.test"
    assert config.com_host == "community.example.test"
    assert config.http_timeout == 90.0
    assert config.user_agent == "agent/2"
    assert config.umqid == "777"


def test_timeout_is_clamped_above_poll_window(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("STEAMCHAT_HTTP_TIMEOUT", "5")
    assert load_config().http_timeout == 35.0


def test_invalid_timeout_falls_back_to_default(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("STEAMCHAT_HTTP_TIMEOUT", "soon")
    assert load_config().http_timeout == HTTP_TIMEOUT_DEFAULT
