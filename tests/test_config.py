"""Tests for configuration handling."""

import pytest

from tunnelgate.config import Config, load_config, parse_list, parse_overrides


class TestParsing:
    """Tests for comma-separated settings."""

    def test_parse_list_trims_and_drops_blanks(self):
        assert parse_list(" a, b ,, c ,") == ["a", "b", "c"]

    def test_parse_list_empty(self):
        assert parse_list("") == []

    def test_parse_overrides(self):
        overrides = parse_overrides(
            "dev=http://localhost:3000, staging = https://staging.example/api"
        )

        assert overrides == {
            "dev": "http://localhost:3000",
            "staging": "https://staging.example/api",
        }

    def test_parse_overrides_keeps_equals_in_url(self):
        overrides = parse_overrides("dev=http://localhost:3000/?x=1")
        assert overrides == {"dev": "http://localhost:3000/?x=1"}

    @pytest.mark.parametrize("value", ["dev", "=http://x", "dev="])
    def test_parse_overrides_rejects_malformed_entries(self, value):
        with pytest.raises(ValueError):
            parse_overrides(value)


class TestConfigLoading:
    """Tests for configuration loading."""

    def test_config_from_env(self, monkeypatch):
        monkeypatch.setenv("PORT", "9000")
        monkeypatch.setenv("REGISTRY_URL", "https://auth.example.com")
        monkeypatch.setenv("REGISTRY_TIMEOUT", "3.5")
        monkeypatch.setenv("UPSTREAM_TIMEOUT", "12")
        monkeypatch.setenv("ALLOWED_CLIENT_IDS", "gowinproc, testclient")
        monkeypatch.setenv("TUNNEL_ENDPOINT_OVERRIDES", "gowinproc=http://localhost:8080")
        monkeypatch.setenv("CORS_ORIGINS", "https://ui.example.com")
        monkeypatch.setenv("UPSTREAM_MAX_BODY_SIZE", "2048")
        monkeypatch.delenv("CONFIG_PATH", raising=False)

        config = load_config()

        assert config.port == 9000
        assert config.registry.url == "https://auth.example.com"
        assert config.registry.timeout == 3.5
        assert config.upstream.timeout == 12.0
        assert config.access.allowed_client_ids == ["gowinproc", "testclient"]
        assert config.access.endpoint_overrides == {
            "gowinproc": "http://localhost:8080"
        }
        assert config.upstream.max_body_size == 2048
        assert config.cors_origins == ["https://ui.example.com"]

    def test_config_defaults(self, monkeypatch):
        for key in [
            "PORT", "REGISTRY_URL", "ALLOWED_CLIENT_IDS",
            "TUNNEL_ENDPOINT_OVERRIDES", "CORS_ORIGINS", "STATIC_DIR", "CONFIG_PATH",
            "UPSTREAM_MAX_BODY_SIZE",
        ]:
            monkeypatch.delenv(key, raising=False)

        config = load_config()

        assert config.port == 8787
        assert config.access.allowed_client_ids == []
        assert config.access.endpoint_overrides == {}
        assert config.cors_origins == ["*"]
        assert config.static_dir is None
        assert config.upstream.max_body_size is None

    def test_config_from_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text(
            "server:\n"
            "  port: 9100\n"
            "registry:\n"
            "  url: https://auth.example.com\n"
            "  timeout: 4\n"
            "upstream:\n"
            "  max_body_size: 1048576\n"
            "access:\n"
            "  allowed_client_ids: [gowinproc]\n"
            "  endpoint_overrides: \"gowinproc=http://localhost:8080\"\n"
            "cors:\n"
            "  origins: https://ui.example.com\n"
            "static_dir: /srv/ui\n"
        )
        monkeypatch.setenv("CONFIG_PATH", str(path))

        config = load_config()

        assert config.port == 9100
        assert config.registry.url == "https://auth.example.com"
        assert config.registry.timeout == 4.0
        assert config.access.allowed_client_ids == ["gowinproc"]
        assert config.access.endpoint_overrides == {
            "gowinproc": "http://localhost:8080"
        }
        assert config.cors_origins == ["https://ui.example.com"]
        assert config.static_dir == "/srv/ui"
        assert config.upstream.max_body_size == 1048576

    def test_config_from_empty_yaml_uses_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        config = Config.from_yaml(str(path))

        assert config.port == 8787
        assert config.registry.url == "http://tunnel-registry:8080"
