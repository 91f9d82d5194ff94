"""Tests for operations context handling."""

import logging

import pytest
import yaml

from milou_ops.config import OpsContext, load_context
from milou_ops.log import configure_logging


@pytest.mark.unit
class TestOpsContext:
    """Tests for OpsContext class."""

    def test_for_directory(self, tmp_path):
        """Test the standard layout under an installation directory."""
        context = OpsContext.for_directory(tmp_path)

        assert context.env_file == tmp_path / ".env"
        assert context.ssl_dir == tmp_path / "ssl"
        assert context.backup_dir == tmp_path
        assert context.template_file is None
        assert context.node_env == "production"

    def test_from_env_defaults(self, tmp_path):
        """Test that the default home is under XDG_DATA_HOME."""
        # conftest.py sets XDG_DATA_HOME to tmp_path / "data"
        context = OpsContext.from_env()

        assert context.base_dir == tmp_path / "data" / "milou"
        assert context.env_file == tmp_path / "data" / "milou" / ".env"

    def test_from_env(self, tmp_path, monkeypatch):
        """Test loading context from environment variables."""
        monkeypatch.setenv("MILOU_HOME", str(tmp_path / "home"))
        monkeypatch.setenv("MILOU_SSL_DIR", str(tmp_path / "certs"))
        monkeypatch.setenv("MILOU_BACKUP_DIR", str(tmp_path / "backups"))
        monkeypatch.setenv("MILOU_TEMPLATE", str(tmp_path / "env.j2"))
        monkeypatch.setenv("NODE_ENV", "development")

        context = OpsContext.from_env()

        assert context.base_dir == tmp_path / "home"
        assert context.env_file == tmp_path / "home" / ".env"
        assert context.ssl_dir == tmp_path / "certs"
        assert context.backup_dir == tmp_path / "backups"
        assert context.template_file == tmp_path / "env.j2"
        assert context.node_env == "development"

    def test_from_env_file_override(self, tmp_path, monkeypatch):
        """Test MILOU_ENV_FILE overrides the configuration file path."""
        monkeypatch.setenv("MILOU_ENV_FILE", str(tmp_path / "custom.env"))
        assert OpsContext.from_env().env_file == tmp_path / "custom.env"

    def test_from_config_file(self, tmp_path):
        """Test loading context from a YAML file."""
        config_data = {
            "base_dir": str(tmp_path / "install"),
            "ssl_dir": "certs",
            "backup_dir": str(tmp_path / "backups"),
            "node_env": "development",
        }

        config_file = tmp_path / "milou.yaml"
        with open(config_file, "w") as f:
            yaml.dump(config_data, f)

        context = OpsContext.from_config_file(str(config_file))

        assert context.base_dir == tmp_path / "install"
        assert context.ssl_dir == tmp_path / "install" / "certs"
        assert context.backup_dir == tmp_path / "backups"
        assert context.env_file == tmp_path / "install" / ".env"
        assert context.node_env == "development"

    def test_from_config_file_default_base(self, tmp_path):
        """Test that base_dir defaults to the settings file's directory."""
        config_file = tmp_path / "milou.yaml"
        config_file.write_text("env_file: prod.env\n")

        context = OpsContext.from_config_file(str(config_file))

        assert context.base_dir == tmp_path
        assert context.env_file == tmp_path / "prod.env"

    def test_from_config_file_not_found(self):
        """Test error when config file doesn't exist."""
        with pytest.raises(FileNotFoundError):
            OpsContext.from_config_file("/nonexistent/path.yaml")

    def test_from_config_file_not_mapping(self, tmp_path):
        """Test error when the YAML document is not a mapping."""
        config_file = tmp_path / "milou.yaml"
        config_file.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            OpsContext.from_config_file(str(config_file))

    def test_validate_node_env(self, tmp_path):
        """Test validation rejects an unknown NODE_ENV."""
        context = OpsContext.for_directory(tmp_path, node_env="staging")
        with pytest.raises(ValueError, match="Invalid NODE_ENV"):
            context.validate()

    def test_independent_contexts(self, tmp_path):
        """Test that two contexts do not share state."""
        first = OpsContext.for_directory(tmp_path / "a")
        second = OpsContext.for_directory(tmp_path / "b", node_env="development")

        first.ssl_dir = tmp_path / "elsewhere"

        assert second.ssl_dir == tmp_path / "b" / "ssl"
        assert second.node_env == "development"


@pytest.mark.unit
class TestLoadContext:
    """Tests for load_context function."""

    def test_load_from_config_path(self, tmp_path, monkeypatch):
        """Test loading context via MILOU_CONFIG_PATH."""
        config_file = tmp_path / "milou.yaml"
        with open(config_file, "w") as f:
            yaml.dump({"base_dir": str(tmp_path / "install")}, f)

        monkeypatch.setenv("MILOU_CONFIG_PATH", str(config_file))

        context = load_context()

        assert context.base_dir == tmp_path / "install"

    def test_load_from_env(self, tmp_path, monkeypatch):
        """Test loading context from environment variables."""
        monkeypatch.setenv("MILOU_HOME", str(tmp_path))
        assert load_context().env_file == tmp_path / ".env"

    def test_load_invalid_node_env(self, monkeypatch):
        """Test that an invalid NODE_ENV is rejected."""
        monkeypatch.setenv("NODE_ENV", "test")
        with pytest.raises(ValueError, match="Invalid NODE_ENV"):
            load_context()


@pytest.mark.unit
class TestConfigureLogging:
    """Tests for logging setup."""

    def test_debug_from_env(self, monkeypatch):
        """Test MILOU_DEBUG=true selects DEBUG."""
        monkeypatch.setenv("MILOU_DEBUG", "true")
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.append(kw))
        configure_logging()
        assert calls[0]["level"] == logging.DEBUG

    def test_default_info(self, monkeypatch):
        """Test INFO is the default level."""
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.append(kw))
        configure_logging()
        assert calls[0]["level"] == logging.INFO
