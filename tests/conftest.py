import matplotlib

matplotlib.use("Agg")

import pytest

from assembler import parse_program
from stage_timing import DEFAULT_LATENCIES


@pytest.fixture
def latencies():
    return DEFAULT_LATENCIES


@pytest.fixture
def program():
    def build(source):
        return parse_program(source)
    return build
