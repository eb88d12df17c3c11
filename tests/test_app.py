from __future__ import annotations

import uvicorn

from accounts_api import app as app_module
from accounts_api.core import config as core_config


def test_main_reads_dotenv_before_settings(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("JWT_SECRET=from-dotenv\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    # set first so the original value is restored even after .env writes it
    monkeypatch.setenv("JWT_SECRET", "placeholder")
    monkeypatch.delenv("JWT_SECRET")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'main.db'}")
    started = {}

    def fake_run(app, **kwargs):
        started["app"] = app
        started.update(kwargs)

    monkeypatch.setattr(uvicorn, "run", fake_run)
    core_config.get_settings.cache_clear()
    try:
        app_module.main()
    finally:
        core_config.get_settings.cache_clear()

    assert started["app"].state.settings.jwt_secret == "from-dotenv"
    assert started["port"] == 8000


def test_real_environment_wins_over_dotenv(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("JWT_SECRET=from-dotenv\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("JWT_SECRET", "from-environment")
    app_module.load_env_file()
    core_config.get_settings.cache_clear()
    try:
        assert core_config.get_settings().jwt_secret == "from-environment"
    finally:
        core_config.get_settings.cache_clear()
