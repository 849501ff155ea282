"""Shared test fixtures for the hack batcher."""

import os

os.environ.setdefault("MPLBACKEND", "Agg")

import pytest

from common.models import TargetState
from hack_batcher.formulas import Actor, HackingFormulas


@pytest.fixture
def formulas():
    return HackingFormulas()


@pytest.fixture
def actor():
    return Actor(hacking_skill=250)


@pytest.fixture
def prepared_target():
    """joesguns at minimum security and maximum money."""
    return TargetState("joesguns", security=5, min_security=5, money=62_500_000, max_money=62_500_000,
                       growth=20, required_skill=10)


@pytest.fixture
def messages():
    return []
