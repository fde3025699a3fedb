# tests/conftest.py
"""
Shared fixtures and helpers for the grid_bots tests.
"""

import random

import pytest

from grid_bots import Grid, Instruction


class FixedRandom:
    """Stands in for random.Random, handing out a scripted sequence."""

    def __init__(self, values):
        self.values = list(values)

    def randrange(self, stop):
        value = self.values.pop(0)
        assert 0 <= value < stop
        return value


def instrs(*specs):
    """Build an instruction list from "step" / ("jmpb", 4) style specs."""
    result = []
    for spec in specs:
        if isinstance(spec, tuple):
            result.append(Instruction(spec[0], spec[1]))
        else:
            result.append(Instruction(spec))
    return result


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def small_grid(rng):
    """An empty 3x3 grid with a seeded random source."""
    return Grid(3, 3, rng=rng)
