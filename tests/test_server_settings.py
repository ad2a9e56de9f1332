
from server.api.settings import Settings


def test_settings_from_env_cors_star(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", "*")
    settings = Settings.from_env()

    assert settings.cors_allow_origins() == ["*"]
    assert settings.cors_allow_credentials is False


def test_settings_from_env_custom_origins(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", "https://a.com, https://b.com")
    settings = Settings.from_env()

    assert settings.cors_allow_origins() == ["https://a.com", "https://b.com"]
    assert settings.cors_allow_credentials is True


def test_settings_sweeper_flag_and_gzip(monkeypatch):
    monkeypatch.setenv("API_SWEEPER_ENABLED", "false")
    monkeypatch.setenv("GZIP_MIN_SIZE", "-5")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    settings = Settings.from_env()

    assert settings.sweeper_enabled is False
    assert settings.gzip_min_size == 0
    assert settings.log_level == "DEBUG"
