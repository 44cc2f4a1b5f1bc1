from guesswho.backend.config import load_settings


def test_load_settings_reads_expected_env(monkeypatch) -> None:
    monkeypatch.setenv("GUESSWHO_HOST", "0.0.0.0")
    monkeypatch.setenv("GUESSWHO_PORT", "9000")
    monkeypatch.setenv("GUESSWHO_SESSION_IDLE_TIMEOUT_MINUTES", "30")
    monkeypatch.setenv("GUESSWHO_CLEANUP_INTERVAL_SECONDS", "15")
    monkeypatch.setenv("GUESSWHO_POST_ROUND_TIMEOUT_SECONDS", "5")
    monkeypatch.setenv("GUESSWHO_LOG_LEVEL", "debug")

    settings = load_settings()

    assert settings.host == "0.0.0.0"
    assert settings.port == 9000
    assert settings.session_idle_timeout_minutes == 30
    assert settings.cleanup_interval_seconds == 15.0
    assert settings.post_round_timeout_seconds == 5.0
    assert settings.log_level == "DEBUG"


def test_load_settings_applies_defaults(monkeypatch) -> None:
    for name in (
        "GUESSWHO_HOST",
        "GUESSWHO_PORT",
        "GUESSWHO_SESSION_IDLE_TIMEOUT_MINUTES",
        "GUESSWHO_CLEANUP_INTERVAL_SECONDS",
        "GUESSWHO_POST_ROUND_TIMEOUT_SECONDS",
        "GUESSWHO_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.host == "127.0.0.1"
    assert settings.port == 8000
    assert settings.session_idle_timeout_minutes == 120
    assert settings.cleanup_interval_seconds == 600.0
    assert settings.post_round_timeout_seconds == 60.0
    assert settings.log_level == "INFO"
