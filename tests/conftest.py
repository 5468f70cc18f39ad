# Copyright (c) 2026 - 2026, Oracle and/or its affiliates. All rights reserved.
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/.

"""Fixtures for tests."""
from collections.abc import Iterator
from pathlib import Path

import pytest

from pkgbuilder.config.defaults import defaults, load_defaults
from tests.mock_utils import FakeRunner

# We need to pass fixture names as arguments to maintain an order.
# pylint: disable=redefined-outer-name


@pytest.fixture(autouse=True)
def setup_test() -> Iterator[None]:
    """Load the shipped defaults.ini before each test and clear it afterwards."""
    load_defaults("")
    yield
    defaults.clear()


@pytest.fixture()
def temp_root(tmp_path: Path) -> Path:
    """Return the directory under which the scratch directories of a test are created."""
    root = tmp_path / "scratch"
    root.mkdir()
    return root


@pytest.fixture()
def fake_runner() -> FakeRunner:
    """Return a process runner that records the commands instead of running them."""
    return FakeRunner()
