# Copyright (c) 2026 - 2026, Oracle and/or its affiliates. All rights reserved.
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/.

"""Tests for the package descriptor loader."""

from pathlib import Path

import pytest

from pkgbuilder.config.defaults import load_defaults
from pkgbuilder.descriptor import (
    BuildSpec,
    SourceKind,
    SourceSpec,
    SubpackageSpec,
    classify_source,
    is_safe_name,
    load_descriptor,
    parse_descriptor,
)
from pkgbuilder.errors import DescriptorError

PACKAGE_TABLE = """
[package]
name = "foo"
version = "1.0"
description = "The foo tool"
license = "MIT"
"""


def test_parse_full_descriptor() -> None:
    """Test parsing a descriptor that uses every table."""
    document = (
        PACKAGE_TABLE
        + """
[[source]]
source = "https://example.com/foo.git"
git_ref = "v1.0"

[[source]]
source = "https://example.com/assets.tar.gz"
destination = "assets"

[[subpackage]]
name = "foo-dev"
description = "Headers for foo"
files = ["usr/include/**"]

[[subpackage]]
name = "foo-doc"
description = "Documentation for foo"

[build]
script = "make install"
"""
    )
    descriptor = parse_descriptor(document, "/tmp/foo.toml")

    assert descriptor.name == "foo"
    assert descriptor.version == "1.0"
    assert descriptor.description == "The foo tool"
    assert descriptor.license == "MIT"
    assert descriptor.sources == (
        SourceSpec(source="https://example.com/foo.git", git_ref="v1.0"),
        SourceSpec(source="https://example.com/assets.tar.gz", destination="assets"),
    )
    assert descriptor.subpackages == (
        SubpackageSpec(name="foo-dev", description="Headers for foo", files=("usr/include/**",)),
        SubpackageSpec(name="foo-doc", description="Documentation for foo", files=()),
    )
    assert descriptor.build == BuildSpec(script="make install")
    assert descriptor.document == document
    assert descriptor.path == "/tmp/foo.toml"


def test_parse_minimal_descriptor() -> None:
    """Test that sources, subpackages and the build table are optional."""
    descriptor = parse_descriptor(PACKAGE_TABLE)
    assert not descriptor.sources
    assert not descriptor.subpackages
    assert descriptor.build is None


@pytest.mark.parametrize(
    "document",
    [
        pytest.param("[package\nname = 'foo'", id="invalid TOML"),
        pytest.param("[build]\nscript = 'true'\n", id="missing package table"),
        pytest.param("[package]\nname = 'foo'\nversion = '1.0'\ndescription = 'd'\n", id="missing license"),
        pytest.param(
            "[package]\nname = 'foo'\nversion = 1\ndescription = 'd'\nlicense = 'MIT'\n",
            id="version is not a string",
        ),
        pytest.param(
            "[package]\nname = '../foo'\nversion = '1.0'\ndescription = 'd'\nlicense = 'MIT'\n",
            id="name escapes the directory",
        ),
        pytest.param(
            "[package]\nname = 'foo'\nversion = '1 0'\ndescription = 'd'\nlicense = 'MIT'\n",
            id="version with a space",
        ),
        pytest.param(PACKAGE_TABLE + "[[source]]\ngit_ref = 'main'\n", id="source without url"),
        pytest.param(PACKAGE_TABLE + "[[source]]\nsource = 'https://example.com/foo.rar'\n", id="unknown suffix"),
        pytest.param(
            PACKAGE_TABLE + "[[source]]\nsource = 'https://example.com/foo.zip'\ngit_ref = 'main'\n",
            id="git_ref on an archive",
        ),
        pytest.param(
            PACKAGE_TABLE + "[[source]]\nsource = 'https://example.com/foo.git'\ndestination = '../up'\n",
            id="destination escapes the build directory",
        ),
        pytest.param("source = 'https://example.com/foo.git'\n" + PACKAGE_TABLE, id="source is not an array"),
        pytest.param(
            PACKAGE_TABLE + "[[subpackage]]\nname = 'foo-dev'\nfiles = 'usr/**'\n",
            id="files is not an array",
        ),
        pytest.param(
            PACKAGE_TABLE + "[[subpackage]]\nname = 'dev'\n[[subpackage]]\nname = 'dev'\n",
            id="duplicate subpackage",
        ),
        pytest.param(PACKAGE_TABLE + "[[subpackage]]\nname = 'foo'\n", id="subpackage named like the package"),
        pytest.param(PACKAGE_TABLE + "[build]\n", id="build without script"),
        pytest.param(PACKAGE_TABLE.replace("[package]", "build = 'make'\n[package]"), id="build is not a table"),
    ],
)
def test_parse_invalid_descriptor(document: str) -> None:
    """Test that invalid descriptors are rejected."""
    with pytest.raises(DescriptorError):
        parse_descriptor(document)


@pytest.mark.parametrize(
    ("source", "expected"),
    [
        ("https://github.com/owner/repo.git", SourceKind.GIT),
        ("https://github.com/owner/repo.git/", SourceKind.GIT),
        ("/srv/mirrors/repo.git", SourceKind.GIT),
        ("https://example.com/foo-1.0.tar.gz", SourceKind.TARBALL),
        ("https://example.com/foo-1.0.tgz?token=abc", SourceKind.TARBALL),
        ("https://example.com/foo-1.0.tar.xz", SourceKind.TARBALL),
        ("https://example.com/foo-1.0.tar.bz2", SourceKind.TARBALL),
        ("file:///tmp/foo.zip", SourceKind.ZIP),
        ("https://example.com/foo.rar", None),
        ("https://example.com/foo", None),
    ],
)
def test_classify_source(source: str, expected: SourceKind | None) -> None:
    """Test selecting the fetch strategy from the suffix of a source."""
    assert classify_source(source) == expected


def test_classify_source_with_user_suffixes(tmp_path: Path) -> None:
    """Test that the suffixes come from the defaults configuration."""
    user_config = tmp_path / "defaults.ini"
    user_config.write_text("[fetcher]\nzip_suffixes = .zip .jar\n", encoding="utf-8")
    assert load_defaults(str(user_config))
    assert classify_source("https://example.com/lib.jar") == SourceKind.ZIP


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("foo", True),
        ("libfoo++", True),
        ("1.0.0-rc1", True),
        ("", False),
        (".hidden", False),
        ("foo/bar", False),
        ("foo..bar", False),
        ("foo bar", False),
    ],
)
def test_is_safe_name(value: str, expected: bool) -> None:
    """Test the validation of names embedded in paths."""
    assert is_safe_name(value) == expected


def test_load_descriptor(tmp_path: Path) -> None:
    """Test loading a descriptor from a file."""
    path = tmp_path / "foo.toml"
    path.write_text(PACKAGE_TABLE, encoding="utf-8")

    descriptor = load_descriptor(str(path))
    assert descriptor.name == "foo"
    assert descriptor.path == str(path)
    assert descriptor.document == PACKAGE_TABLE


def test_load_missing_descriptor(tmp_path: Path) -> None:
    """Test loading a descriptor that does not exist."""
    with pytest.raises(DescriptorError):
        load_descriptor(str(tmp_path / "missing.toml"))
