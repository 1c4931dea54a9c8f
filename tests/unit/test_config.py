"""
Unit tests for ServerConfig.
"""

import pytest

from staticserve.config import ServerConfig


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self):
        config = ServerConfig()

        assert config.host == ""
        assert config.port == 3000
        assert config.cert_file == ""
        assert config.key_file == ""
        assert config.grace_period == 5.0
        assert config.index_file == "index.html"
        assert config.directory_listing is True
        assert config.asset_dir is None

    def test_defaults_validate(self):
        ServerConfig().validate()


class TestTLSFlags:
    """TLS is on only with both files."""

    @pytest.mark.parametrize("cert, key, enabled, partial", [
        ("", "", False, False),
        ("c.pem", "", False, True),
        ("", "k.pem", False, True),
        ("c.pem", "k.pem", True, False),
    ])
    def test_tls_enabled(self, cert, key, enabled, partial):
        config = ServerConfig(cert_file=cert, key_file=key)

        assert config.tls_enabled is enabled
        assert config.tls_partial is partial


class TestFromEnv:
    """Tests for environment variable loading."""

    def test_reads_prefixed_variables(self):
        config = ServerConfig.from_env({
            "STATICSERVE_ADDR": "127.0.0.1",
            "STATICSERVE_PORT": "8443",
            "STATICSERVE_CERT": "tls.crt",
            "STATICSERVE_KEY": "tls.key",
            "STATICSERVE_DIR": "/srv/site",
            "STATICSERVE_LOG_LEVEL": "DEBUG",
            "STATICSERVE_LOG_FORMAT": "json",
        })

        assert config.host == "127.0.0.1"
        assert config.port == 8443
        assert config.tls_enabled
        assert config.asset_dir == "/srv/site"
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"

    def test_empty_environment(self):
        config = ServerConfig.from_env({})

        assert config.port == 3000
        assert config.asset_dir is None

    def test_reads_os_environ(self, monkeypatch):
        monkeypatch.setenv("STATICSERVE_PORT", "4000")
        assert ServerConfig.from_env().port == 4000

    def test_bad_port(self):
        with pytest.raises(ValueError):
            ServerConfig.from_env({"STATICSERVE_PORT": "http"})


class TestValidate:
    """Tests for validate()."""

    @pytest.mark.parametrize("overrides", [
        {"port": -1},
        {"port": 65536},
        {"min_workers": 0},
        {"min_workers": 4, "max_workers": 2},
        {"buffer_size": 10},
        {"timeout": 0},
        {"grace_period": -1},
        {"log_format": "xml"},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ValueError):
            ServerConfig(**overrides).validate()

    def test_port_zero_is_allowed(self):
        """Port 0 asks the OS for a free port."""
        ServerConfig(port=0).validate()

    def test_zero_grace_period_is_allowed(self):
        ServerConfig(grace_period=0).validate()
