"""
Unit tests for server configuration.
"""

import json
from dataclasses import FrozenInstanceError

import pytest

from statichttpd.config import ServerConfig, parse_address, normalize_extensions


class TestParseAddress:
    """Tests for listen address parsing."""

    def test_port_only_binds_all_interfaces(self):
        assert parse_address(":8080") == ("", 8080)

    def test_host_and_port(self):
        assert parse_address("127.0.0.1:80") == ("127.0.0.1", 80)

    def test_bracketed_ipv6(self):
        assert parse_address("[::1]:443") == ("::1", 443)

    @pytest.mark.parametrize("address", ["8080", "localhost", "host:http", ":70000"])
    def test_invalid(self, address):
        with pytest.raises(ValueError):
            parse_address(address)


def test_normalize_extensions():
    assert normalize_extensions([".html", " css ", "", "js"]) == ("html", "css", "js")


class TestServerConfig:
    """Tests for ServerConfig."""

    def test_defaults(self):
        config = ServerConfig()
        assert config.http_bind == ("", 8080)
        assert config.ssl_enabled is False
        assert config.hostname == ""
        assert config.gzip == ()
        assert config.access_log is None

    def test_frozen(self):
        config = ServerConfig()
        with pytest.raises(FrozenInstanceError):
            config.root = "/tmp"

    def test_from_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "Httpd": {
                "Http": ":80",
                "Https": ":443",
                "Ssl": {"Key": "key.pem", "Cert": "cert.pem", "Enabled": True},
                "Hostname": "example.com",
                "Root": "/srv/www",
                "AccessLog": "access.log",
                "Gzip": ["html", "css", "js"],
            }
        }))

        config = ServerConfig.from_file(str(path))

        assert config.http_address == ":80"
        assert config.https_bind == ("", 443)
        assert config.ssl_enabled is True
        assert config.ssl_cert == "cert.pem"
        assert config.ssl_key == "key.pem"
        assert config.hostname == "example.com"
        assert config.root == "/srv/www"
        assert config.access_log == "access.log"
        assert config.gzip == ("html", "css", "js")

    def test_from_file_keys_are_case_insensitive(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text('{"httpd": {"http": ":9000", "ROOT": "/data"}}')

        config = ServerConfig.from_file(str(path))

        assert config.http_address == ":9000"
        assert config.root == "/data"
        assert config.ssl_enabled is False

    def test_from_file_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        with pytest.raises(ValueError):
            ServerConfig.from_file(str(path))

    def test_from_file_missing_section(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text('{"Server": {}}')
        with pytest.raises(ValueError, match="Httpd"):
            ServerConfig.from_file(str(path))

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("HTTPD_HTTP", "127.0.0.1:8000")
        monkeypatch.setenv("HTTPD_HOSTNAME", "example.org")
        monkeypatch.setenv("HTTPD_GZIP", "html, css")
        monkeypatch.setenv("HTTPD_SSL_ENABLED", "true")

        config = ServerConfig.from_env()

        assert config.http_bind == ("127.0.0.1", 8000)
        assert config.hostname == "example.org"
        assert config.gzip == ("html", "css")
        assert config.ssl_enabled is True

    def test_validate_ok(self, tmp_path):
        ServerConfig(root=str(tmp_path)).validate()

    def test_validate_missing_root(self, tmp_path):
        with pytest.raises(ValueError, match="root"):
            ServerConfig(root=str(tmp_path / "nope")).validate()

    def test_validate_bad_address(self, tmp_path):
        with pytest.raises(ValueError):
            ServerConfig(root=str(tmp_path), http_address="nope").validate()

    def test_validate_tls_requires_cert_and_key(self, tmp_path):
        with pytest.raises(ValueError):
            ServerConfig(root=str(tmp_path), ssl_enabled=True).validate()

    def test_validate_small_buffer(self, tmp_path):
        with pytest.raises(ValueError):
            ServerConfig(root=str(tmp_path), buffer_size=16).validate()
