from __future__ import annotations

import importlib

import intake.config as config


def _reload_with(monkeypatch, **env):
    for name, value in env.items():
        if value is None:
            monkeypatch.delenv(name, raising=False)
        else:
            monkeypatch.setenv(name, value)
    return importlib.reload(config)


def test_settings_read_voice_and_model(monkeypatch):
    try:
        reloaded = _reload_with(monkeypatch, GEMINI_VOICE="Puck", GEMINI_MODEL="gemini-live-test")
        assert reloaded.settings.gemini_voice == "Puck"
        assert reloaded.settings.gemini_model == "gemini-live-test"
    finally:
        monkeypatch.undo()
        importlib.reload(config)


def test_api_key_falls_back_to_api_key_variable(monkeypatch):
    try:
        reloaded = _reload_with(monkeypatch, GEMINI_API_KEY=None, API_KEY="secret-key")
        assert reloaded.settings.gemini_api_key == "secret-key"
    finally:
        monkeypatch.undo()
        importlib.reload(config)


def test_device_indexes_default_to_system_devices(monkeypatch):
    try:
        reloaded = _reload_with(monkeypatch, INPUT_DEVICE="", OUTPUT_DEVICE="3")
        assert reloaded.settings.input_device is None
        assert reloaded.settings.output_device == 3
    finally:
        monkeypatch.undo()
        importlib.reload(config)


def test_settings_are_cached():
    assert config.get_settings() is config.settings
