# Copyright (c) 2026 - 2026, Oracle and/or its affiliates. All rights reserved.
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/.

"""This module tests the defaults module."""

import os
from pathlib import Path

import pytest

from pkgbuilder.config.defaults import ConfigParser, create_defaults, defaults, load_defaults


def test_load_defaults(tmp_path: Path) -> None:
    """Test loading defaults."""
    user_config = tmp_path / "defaults.ini"
    user_config.write_text(
        """
        [build]
        shell = sh
        """,
        encoding="utf-8",
    )

    # Test that the values in user configuration are prioritized.
    assert load_defaults(str(user_config)) is True
    assert defaults.get("build", "shell") == "sh"

    # Test that the values not overridden by the user come from the shipped file.
    assert defaults.get("build", "output_env_var") == "OUT"
    assert defaults.get("packager", "manifest_name") == "package.toml"

    # Test loading an invalid configuration path.
    assert load_defaults(str(tmp_path / "invalid.ini")) is False


def test_load_defaults_syntax_error(tmp_path: Path) -> None:
    """Test loading a user configuration that is not a valid ini file."""
    user_config = tmp_path / "defaults.ini"
    user_config.write_text("no section header\n", encoding="utf-8")
    assert load_defaults(str(user_config)) is False


def test_create_defaults(tmp_path: Path) -> None:
    """Test dumping the default values."""
    assert create_defaults(str(tmp_path), str(tmp_path)) is True

    dumped = ConfigParser()
    dumped.read(tmp_path / "defaults.ini", encoding="utf8")
    assert dumped.get("build", "shell") == "bash"


@pytest.mark.xfail(
    os.geteuid() == 0,
    reason="Only effective for non-root users",
)
def test_create_defaults_without_permission() -> None:
    """Test dumping default config in cases where the user does not have write permission to the output location."""
    assert create_defaults(output_path="/", cwd_path="/") is False


@pytest.mark.parametrize(
    ("user_config_input", "delimiter", "expect"),
    [
        (
            """
            [test.list]
            list =
                .tar.gz .tgz
                .tar.xz
                .tgz
            """,
            None,
            [".tar.gz", ".tgz", ".tar.xz"],
        ),
        (
            """
            [test.list]
            list = ,github.com, gitlab.com, space string, space string
            """,
            ",",
            ["github.com", "gitlab.com", "space string"],
        ),
        (
            """
            [test.list]
            list =
            """,
            None,
            [],
        ),
    ],
)
def test_get_str_list_with_custom_delimiter(user_config_input: str, delimiter: str | None, expect: list[str]) -> None:
    """Test getting a list of strings from defaults.ini."""
    content = ConfigParser()
    content.read_string(user_config_input)
    assert content.get_list("test.list", "list", delimiter=delimiter) == expect


def test_get_list_fallback() -> None:
    """Test that the fallback is returned when the section or the item is missing."""
    content = ConfigParser()
    content.read_string("[test.list]\n")
    assert content.get_list("test.list", "missing", fallback=["a"]) == ["a"]
    assert content.get_list("missing.section", "list") == []
