"""Tests for writing resolved secrets to the restricted directory."""

import stat
from unittest.mock import patch

import pytest

from bootlayer.config.secrets import (
    EnvSecretBackend,
    SecretBackend,
    SecretConfig,
    SecretResolver,
    SecretSpec,
)
from bootlayer.config.secrets.materialize import SecretMaterializer
from bootlayer.config.secrets.materialize import _write_private as real_write
from bootlayer.core.errors import ConfigurationError, SecretNotFoundError


def env_resolver(values):
    return SecretResolver(SecretConfig(), backends={SecretBackend.ENV: EnvSecretBackend(values)})


def mode(path):
    return stat.S_IMODE(path.stat().st_mode)


class TestSecretMaterializer:
    def test_writes_owner_only_files(self, tmp_path):
        directory = tmp_path / "secrets"
        resolver = env_resolver({"DUCKDNS_TOKEN": "tok", "DOMAIN": "example.org"})
        specs = [SecretSpec("duckdns_token"), SecretSpec("domain_name", env="DOMAIN")]

        result = SecretMaterializer(resolver, directory).materialize(specs)

        assert mode(directory) == 0o700
        assert result.files["duckdns_token"].read_text() == "tok"
        assert result.files["domain_name"].read_text() == "example.org"
        for path in result.files.values():
            assert mode(path) == 0o600
        assert result.env == {"DUCKDNS_TOKEN": "tok", "DOMAIN": "example.org"}

    def test_missing_required_writes_nothing(self, tmp_path):
        directory = tmp_path / "secrets"
        resolver = env_resolver({"DUCKDNS_TOKEN": "tok"})
        specs = [SecretSpec("duckdns_token"), SecretSpec("api_key"), SecretSpec("db_pass")]

        with pytest.raises(SecretNotFoundError) as exc_info:
            SecretMaterializer(resolver, directory).materialize(specs)

        assert exc_info.value.names == ["api_key", "db_pass"]
        assert not directory.exists()

    def test_optional_secret_may_be_absent(self, tmp_path):
        resolver = env_resolver({"DUCKDNS_TOKEN": "tok"})
        specs = [SecretSpec("duckdns_token"), SecretSpec("bucket", required=False)]

        result = SecretMaterializer(resolver, tmp_path / "s").materialize(specs)

        assert set(result.files) == {"duckdns_token"}

    def test_explicit_values_take_precedence(self, tmp_path):
        resolver = env_resolver({"DUCKDNS_TOKEN": "env"})
        result = SecretMaterializer(resolver, tmp_path / "s").materialize(
            [SecretSpec("duckdns_token")], explicit={"duckdns_token": "cli"}
        )
        assert result.env["DUCKDNS_TOKEN"] == "cli"

    def test_existing_directory_is_tightened(self, tmp_path):
        directory = tmp_path / "secrets"
        directory.mkdir(mode=0o755)
        resolver = env_resolver({"TOKEN": "x"})

        SecretMaterializer(resolver, directory).materialize([SecretSpec("token")])

        assert mode(directory) == 0o700

    def test_partial_write_is_cleaned_up(self, tmp_path):
        directory = tmp_path / "secrets"
        resolver = env_resolver({"A": "1", "B": "2"})
        calls = []

        def failing_write(path, value):
            calls.append(path)
            real_write(path, value)
            if len(calls) == 2:
                raise OSError("disk full")

        with patch(
            "bootlayer.config.secrets.materialize._write_private", side_effect=failing_write
        ):
            with pytest.raises(ConfigurationError):
                SecretMaterializer(resolver, directory).materialize(
                    [SecretSpec("a"), SecretSpec("b")]
                )

        assert list(directory.iterdir()) == []
