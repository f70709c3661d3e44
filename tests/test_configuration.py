import pytest

from interpress.configuration import (
    InterpressConfig,
    get_settings,
    load_settings,
    validate_provider_settings,
)
from interpress.errors import ConfigurationError


def test_defaults_without_any_source(tmp_path):
    settings = load_settings(app_dir=tmp_path, environ={})

    assert settings.INTERPRESS_MAX_CHUNK_LENGTH == 4000
    assert settings.INTERPRESS_MAX_RETRIES == 3
    assert settings.INTERPRESS_TITLE_TIMEOUT == 30.0
    assert settings.INTERPRESS_BODY_TIMEOUT == 120.0
    assert settings.INTERPRESS_PROVIDERS == ["gemini"]
    assert settings.INTERPRESS_TARGET_LANGUAGE is None
    assert settings.wordpress_credentials() is None


def test_environment_overrides_dotenv(tmp_path):
    (tmp_path / ".env").write_text(
        "INTERPRESS_MAX_RETRIES=5\n"
        "INTERPRESS_TARGET_LANGUAGE=fr\n"
        "WP_SITE_URL=https://blog.example.com\n"
        "WP_USERNAME=editor\n"
        "WP_APP_PASSWORD=secret\n",
        encoding="utf-8",
    )

    settings = load_settings(app_dir=tmp_path, environ={"INTERPRESS_MAX_RETRIES": "1"})

    assert settings.INTERPRESS_MAX_RETRIES == 1
    assert settings.INTERPRESS_TARGET_LANGUAGE == "fr"
    credentials = settings.wordpress_credentials()
    assert credentials is not None
    assert credentials.username == "editor"


def test_comma_separated_lists_expand_into_ordered_credentials(tmp_path):
    settings = load_settings(
        app_dir=tmp_path,
        environ={
            "INTERPRESS_PROVIDERS": "openai, google, mock",
            "GEMINI_API_KEYS": "key-a, key-b,,",
            "OPENAI_API_KEY": "sk-test",
        },
    )

    assert settings.INTERPRESS_PROVIDERS == ["openai", "gemini", "echo"]
    assert settings.GEMINI_API_KEYS == ["key-a", "key-b"]
    assert [(c.provider, c.api_key) for c in settings.credentials()] == [
        ("openai", "sk-test"),
        ("gemini", "key-a"),
        ("gemini", "key-b"),
        ("echo", ""),
    ]


def test_unrelated_environment_variables_are_ignored(tmp_path):
    settings = load_settings(app_dir=tmp_path, environ={"PATH": "/usr/bin", "HOME": "/root"})

    assert isinstance(settings, InterpressConfig)


@pytest.mark.parametrize(
    "environ, fragment",
    [
        ({"INTERPRESS_TARGET_LANGUAGE": "xx"}, "unsupported target language"),
        ({"INTERPRESS_MAX_RETRIES": "-1"}, "INTERPRESS_MAX_RETRIES"),
        ({"INTERPRESS_PROVIDERS": "deepl"}, "INTERPRESS_PROVIDERS"),
        ({"INTERPRESS_LOG_LEVEL": "loud"}, "unknown log level"),
    ],
)
def test_invalid_values_raise_configuration_error(tmp_path, environ, fragment):
    with pytest.raises(ConfigurationError) as excinfo:
        load_settings(app_dir=tmp_path, environ=environ)

    message = str(excinfo.value)
    assert message.startswith("Configuration validation errors detected:")
    assert fragment in message


def test_provider_settings_require_keys(tmp_path):
    settings = load_settings(
        app_dir=tmp_path,
        environ={"INTERPRESS_PROVIDERS": "gemini,openai"},
    )

    with pytest.raises(ConfigurationError) as excinfo:
        validate_provider_settings(settings)

    assert "GEMINI_API_KEYS" in str(excinfo.value)
    assert "OPENAI_API_KEY" in str(excinfo.value)


def test_get_settings_is_cached(tmp_path, monkeypatch):
    monkeypatch.setenv("INTERPRESS_MAX_CHUNK_LENGTH", "1234")

    first = get_settings(tmp_path)
    monkeypatch.setenv("INTERPRESS_MAX_CHUNK_LENGTH", "99")

    assert get_settings(tmp_path) is first
    assert first.INTERPRESS_MAX_CHUNK_LENGTH == 1234
