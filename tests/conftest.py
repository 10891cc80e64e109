"""Shared fixtures."""

from __future__ import annotations

import pytest

from tests.stubs import StubConverter


@pytest.fixture()
def converter() -> StubConverter:
    return StubConverter()
