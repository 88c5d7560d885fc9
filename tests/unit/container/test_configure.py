"""Unit tests for file configuration operations."""

import os
import stat

import pytest

from fuse_harness.container import ConfigOperation, ConfigOption, apply_operation, apply_operations
from fuse_harness.container.configure import (
    ADMIN_CONFIG,
    DEFAULT_ADMIN_CONFIG,
    enable_admin_user,
    make_scripts_executable,
)
from fuse_harness.errors import ConfigurationError


class TestAppend:
    """Tests for append-properties."""

    def test_append_preserves_order(self, container_home):
        """foo = 1 plus bar=2 yields one appended line per key."""
        target = container_home / "etc" / "custom.cfg"
        target.write_text("foo = 1\n")

        apply_operation(
            ConfigOperation(
                option=ConfigOption.APPEND,
                destination="etc/custom.cfg",
                properties={"bar": "2"},
            ),
            container_home,
        )

        assert target.read_text() == "foo = 1\nbar = 2\n"

    def test_append_multiple_keys(self, container_home):
        target = container_home / "etc" / "custom.cfg"
        target.write_text("")

        apply_operation(
            ConfigOperation(
                option=ConfigOption.APPEND,
                destination="etc/custom.cfg",
                properties={"b": "1", "a": "2"},
            ),
            container_home,
        )

        assert target.read_text() == "b = 1\na = 2\n"

    def test_append_after_unterminated_line(self, container_home):
        """Test a missing trailing newline does not merge lines."""
        target = container_home / "etc" / "custom.cfg"
        target.write_text("foo = 1")

        apply_operation(
            ConfigOperation(
                option=ConfigOption.APPEND,
                destination="etc/custom.cfg",
                properties={"bar": "2"},
            ),
            container_home,
        )

        assert target.read_text() == "foo = 1\nbar = 2\n"

    def test_append_requires_properties(self, container_home):
        (container_home / "etc" / "custom.cfg").write_text("")
        with pytest.raises(ConfigurationError, match="Null properties"):
            apply_operation(
                ConfigOperation(option=ConfigOption.APPEND, destination="etc/custom.cfg"),
                container_home,
            )

    def test_append_to_directory(self, container_home):
        with pytest.raises(ConfigurationError, match="is a directory"):
            apply_operation(
                ConfigOperation(
                    option=ConfigOption.APPEND, destination="etc", properties={"a": "1"}
                ),
                container_home,
            )


class TestCopy:
    """Tests for copy-file-into-directory."""

    def test_copy_into_directory(self, container_home, tmp_path):
        source = tmp_path / "org.ops4j.pax.logging.cfg"
        source.write_text("log4j.rootLogger=INFO\n")

        apply_operation(
            ConfigOperation(option=ConfigOption.COPY, destination="etc", source=source),
            container_home,
        )

        copied = container_home / "etc" / "org.ops4j.pax.logging.cfg"
        assert copied.read_text() == "log4j.rootLogger=INFO\n"

    def test_copy_missing_source(self, container_home, tmp_path):
        with pytest.raises(ConfigurationError, match="does not exist"):
            apply_operation(
                ConfigOperation(
                    option=ConfigOption.COPY, destination="etc", source=tmp_path / "missing.cfg"
                ),
                container_home,
            )

    def test_copy_onto_file(self, container_home, tmp_path):
        source = tmp_path / "a.cfg"
        source.write_text("")
        with pytest.raises(ConfigurationError, match="is a file"):
            apply_operation(
                ConfigOperation(
                    option=ConfigOption.COPY,
                    destination="etc/users.properties",
                    source=source,
                ),
                container_home,
            )

    def test_copy_requires_source(self, container_home):
        with pytest.raises(ConfigurationError, match="Null source"):
            apply_operation(
                ConfigOperation(option=ConfigOption.COPY, destination="etc"), container_home
            )


class TestReplace:
    """Tests for replace-text-in-file."""

    def test_replace_all_occurrences(self, container_home):
        target = container_home / "etc" / "system.properties"
        target.write_text("port=8181\nssl.port=8181\n")

        apply_operation(
            ConfigOperation(
                option=ConfigOption.REPLACE,
                destination="etc/system.properties",
                target="8181",
                replacement="9191",
            ),
            container_home,
        )

        assert target.read_text() == "port=9191\nssl.port=9191\n"

    def test_replace_requires_replacement(self, container_home):
        with pytest.raises(ConfigurationError, match="Null replacement"):
            apply_operation(
                ConfigOperation(
                    option=ConfigOption.REPLACE,
                    destination="etc/users.properties",
                    target="admin",
                ),
                container_home,
            )

    def test_replace_missing_destination(self, container_home):
        with pytest.raises(ConfigurationError, match="does not exist"):
            apply_operation(
                ConfigOperation(
                    option=ConfigOption.REPLACE,
                    destination="etc/missing.cfg",
                    target="a",
                    replacement="b",
                ),
                container_home,
            )


class TestApplyOperations:
    """Tests for ordered application."""

    def test_stops_at_first_failure(self, container_home):
        target = container_home / "etc" / "custom.cfg"
        target.write_text("")
        operations = (
            ConfigOperation(option=ConfigOption.APPEND, destination="etc/missing.cfg", properties={"a": "1"}),
            ConfigOperation(option=ConfigOption.APPEND, destination="etc/custom.cfg", properties={"b": "2"}),
        )

        with pytest.raises(ConfigurationError):
            apply_operations(operations, container_home)

        assert target.read_text() == ""

    def test_empty_destination(self, container_home):
        with pytest.raises(ConfigurationError, match="Null destination"):
            apply_operation(
                ConfigOperation(option=ConfigOption.APPEND, destination="", properties={"a": "1"}),
                container_home,
            )


class TestPreparation:
    """Tests for container preparation steps."""

    def test_make_scripts_executable(self, container_home):
        script = container_home / "bin" / "start"
        script.chmod(0o644)

        changed = make_scripts_executable(container_home)

        assert script in changed
        assert os.stat(script).st_mode & stat.S_IXUSR

    def test_missing_bin_directory(self, tmp_path):
        with pytest.raises(ConfigurationError):
            make_scripts_executable(tmp_path)

    def test_enable_admin_user(self, container_home):
        enable_admin_user(container_home)

        content = (container_home / "etc" / "users.properties").read_text()
        assert content == f"{ADMIN_CONFIG}\n"
        assert DEFAULT_ADMIN_CONFIG not in content

    def test_enable_admin_user_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            enable_admin_user(tmp_path)
