"""
Tests for settings and .env handling.
"""
import os

import pytest

from abb_automation.config import Settings, load_dotenv, upsert_dotenv
from abb_automation.errors import ConfigError


class TestSettings:

    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.n8n_base_url == "http://localhost:5678"
        assert settings.clickup_team_id == "1293152"
        assert settings.http_timeout == 30.0

    def test_values_and_trailing_slash(self):
        settings = Settings.from_env({
            "N8N_BASE_URL": "https://n8n.example.com/",
            "N8N_API_KEY": "key",
            "HTTP_TIMEOUT_S": "12.5",
        })
        assert settings.n8n_base_url == "https://n8n.example.com"
        assert settings.n8n_api_key == "key"
        assert settings.http_timeout == 12.5

    def test_n8n_api_url_fallback(self):
        settings = Settings.from_env({"N8N_API_URL": "https://old.example.com"})
        assert settings.n8n_base_url == "https://old.example.com"
        settings = Settings.from_env({"N8N_API_URL": "https://old", "N8N_BASE_URL": "https://new"})
        assert settings.n8n_base_url == "https://new"

    def test_bad_timeout(self):
        with pytest.raises(ConfigError, match="HTTP_TIMEOUT_S"):
            Settings.from_env({"HTTP_TIMEOUT_S": "soon"})

    def test_require_names_env_var(self):
        settings = Settings.from_env({})
        with pytest.raises(ConfigError, match="CLICKUP_API_KEY"):
            settings.require("clickup_api_key")
        assert Settings.from_env({"CLICKUP_API_KEY": "pk"}).require("clickup_api_key") == "pk"


class TestDotenv:

    def test_load_keeps_existing_environment(self, tmp_path, monkeypatch):
        path = tmp_path / ".env"
        path.write_text('# comment\nABB_TEST_A="from-file"\nABB_TEST_B=file\nnot a pair\n',
                        encoding="utf-8")
        monkeypatch.delenv("ABB_TEST_A", raising=False)
        monkeypatch.setenv("ABB_TEST_B", "from-env")

        assert load_dotenv(path) is True
        assert os.environ["ABB_TEST_A"] == "from-file"
        assert os.environ["ABB_TEST_B"] == "from-env"

    def test_missing_file(self, tmp_path):
        assert load_dotenv(tmp_path / "absent.env") is False

    def test_upsert_replaces_and_appends(self, tmp_path):
        path = tmp_path / ".env"
        path.write_text("GOOGLE_CLIENT_ID=cid\nGOOGLE_REFRESH_TOKEN=old\n", encoding="utf-8")
        upsert_dotenv({"GOOGLE_REFRESH_TOKEN": "new", "GOOGLE_REDIRECT_URI": "http://localhost:8080/"}, path)
        assert path.read_text(encoding="utf-8") == (
            "GOOGLE_CLIENT_ID=cid\nGOOGLE_REFRESH_TOKEN=new\nGOOGLE_REDIRECT_URI=http://localhost:8080/\n"
        )

    def test_upsert_creates_file(self, tmp_path):
        path = tmp_path / ".env"
        upsert_dotenv({"A": "1"}, path)
        assert path.read_text(encoding="utf-8") == "A=1\n"
