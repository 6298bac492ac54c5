"""Tests for configuration module."""

from pathlib import Path

import pytest

from mysql_fax.config import ConfigRegistry, Role, Settings, load_settings
from mysql_fax.errors import (
    ConfigLoadError,
    InvalidEnvironmentError,
    UnknownEnvironmentError,
)


class TestConfigRegistry:
    """Test loading and classifying database.yml entries."""

    def test_load(self, registry: ConfigRegistry) -> None:
        """Test all entries are loaded, merge keys included."""
        assert registry.names() == ["default", "development", "test", "production"]
        dev = registry.get("development")
        assert dev.adapter == "mysql2"
        assert dev.socket == "/tmp/mysql.sock"

    def test_sources_and_destinations(self, registry: ConfigRegistry) -> None:
        """Test sources need both gateway keys; destinations are the rest."""
        assert registry.sources() == ["production"]
        assert registry.destinations() == ["default", "development", "test"]
        assert set(registry.sources()) | set(registry.destinations()) == set(registry.names())

    def test_single_gateway_key_is_destination(self) -> None:
        """Test an entry with only one gateway key is not a source."""
        registry = ConfigRegistry.from_mapping({
            "half": {"server": "gw", "username": "u", "password": "p", "database": "d"},
            "blank": {"server": "gw", "server_username": "", "database": "d"},
        })
        assert registry.sources() == []
        assert registry.destinations() == ["half", "blank"]

    def test_get_unknown(self, registry: ConfigRegistry) -> None:
        """Test unknown names raise UnknownEnvironmentError."""
        with pytest.raises(UnknownEnvironmentError, match="staging"):
            registry.get("staging", Role.DESTINATION)

    def test_get_source_lists_every_missing_field(self) -> None:
        """Test validation reports all missing fields, not just the first."""
        registry = ConfigRegistry.from_mapping({
            "prod": {"server": "gw", "server_username": "deploy", "database": "app"},
        })
        with pytest.raises(InvalidEnvironmentError) as excinfo:
            registry.get("prod", Role.SOURCE)

        assert excinfo.value.missing == ["username", "password", "host"]
        assert "username, password, host" in str(excinfo.value)

    def test_get_destination_checks_fewer_fields(self, registry: ConfigRegistry) -> None:
        """Test a destination does not need host or gateway keys."""
        env = registry.get("development", Role.DESTINATION)
        assert env.host is None
        assert env.role is Role.DESTINATION

    def test_default_entry_invalid_as_destination(self, registry: ConfigRegistry) -> None:
        """Test the anchor entry fails destination validation."""
        with pytest.raises(InvalidEnvironmentError) as excinfo:
            registry.get("default", Role.DESTINATION)
        assert excinfo.value.missing == ["username", "password", "database"]

    def test_password_is_secret(self, registry: ConfigRegistry) -> None:
        """Test passwords are not exposed by repr."""
        env = registry.get("production", Role.SOURCE)
        assert "s3cr" not in repr(env)
        assert env.password_value == "s3cr'et $(rm -rf /)"
        assert env.gateway == "deploy@gw.example.com"

    def test_numeric_values_coerced(self) -> None:
        """Test YAML numbers become strings where text is expected."""
        registry = ConfigRegistry.from_mapping({
            "local": {"username": "root", "password": 1234, "database": 2024, "port": "3306"},
        })
        env = registry.get("local", Role.DESTINATION)
        assert env.password_value == "1234"
        assert env.database == "2024"
        assert env.port == 3306

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test a missing file raises ConfigLoadError."""
        with pytest.raises(ConfigLoadError, match="file not found"):
            ConfigRegistry.load(tmp_path / "nope.yml")

    def test_malformed_yaml(self, tmp_path: Path) -> None:
        """Test invalid YAML raises ConfigLoadError."""
        path = tmp_path / "database.yml"
        path.write_text("production: [unclosed\n  - x: :")
        with pytest.raises(ConfigLoadError, match="invalid YAML"):
            ConfigRegistry.load(path)

    def test_not_utf8(self, tmp_path: Path) -> None:
        """Test undecodable bytes raise ConfigLoadError."""
        path = tmp_path / "database.yml"
        path.write_bytes(b"\xff\xfe production:\n")
        with pytest.raises(ConfigLoadError, match="not valid UTF-8"):
            ConfigRegistry.load(path)

    def test_non_mapping_entry(self, tmp_path: Path) -> None:
        """Test entries that are not mappings are rejected."""
        path = tmp_path / "database.yml"
        path.write_text("production: just-a-string\n")
        with pytest.raises(ConfigLoadError, match="must be a mapping"):
            ConfigRegistry.load(path)

    def test_reload_sees_edits(self, database_yml: Path) -> None:
        """Test each load reads the file fresh."""
        first = ConfigRegistry.load(database_yml)
        database_yml.write_text(database_yml.read_text() + "\nstaging:\n  database: s\n")
        second = ConfigRegistry.load(database_yml)
        assert "staging" not in first
        assert "staging" in second


class TestSettings:
    """Test Settings class."""

    def test_default_settings(self) -> None:
        """Test default settings creation."""
        settings = Settings()
        assert settings.ssh.local_port == 3307
        assert settings.ssh.remote_port == 3306
        assert settings.dump.primary_key == "id"
        assert settings.dump.timestamp_column == "created_at"
        assert "schema_migrations" in settings.dump.excluded_tables
        assert settings.dry_run is False

    def test_settings_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test settings loading from environment variables."""
        monkeypatch.setenv("MYSQL_FAX_DATABASE_CONFIG", "/etc/app/database.yml")
        monkeypatch.setenv("MYSQL_FAX_SSH__LOCAL_PORT", "3400")
        monkeypatch.setenv("MYSQL_FAX_DUMP__COMPRESSION_LEVEL", "6")

        settings = Settings()
        assert settings.database_config == Path("/etc/app/database.yml")
        assert settings.ssh.local_port == 3400
        assert settings.dump.compression_level == 6

    def test_settings_from_yaml_file(self, tmp_path: Path) -> None:
        """Test settings files in YAML form."""
        path = tmp_path / "fax.yml"
        path.write_text("dump:\n  small_table_threshold: 50\nlogging:\n  level: DEBUG\n")
        settings = load_settings(path)
        assert settings.dump.small_table_threshold == 50
        assert settings.logging.level == "DEBUG"

    def test_settings_from_json_with_overrides(self, tmp_path: Path) -> None:
        """Test overrides win over file values."""
        path = tmp_path / "fax.json"
        path.write_text('{"dry_run": false, "ssh": {"local_port": 3999}}')
        settings = load_settings(path, dry_run=True)
        assert settings.dry_run is True
        assert settings.ssh.local_port == 3999

    def test_unsupported_settings_format(self, tmp_path: Path) -> None:
        """Test unknown extensions are rejected."""
        path = tmp_path / "fax.ini"
        path.write_text("[x]")
        with pytest.raises(ValueError, match="Unsupported"):
            Settings.from_file(path)
