import numpy as np
import pytest

from groupframe import config as gf_config


def pytest_addoption(parser):
    parser.addoption(
        "--size",
        action="store",
        default="10**2",
        help="Problem size: number of rows of the frames used by tests. "
        "Several sizes may be given, separated by commas.",
    )
    parser.addoption(
        "--seed",
        action="store",
        default="",
        help="Value to initialize random number generator.",
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: mark test as slow to run")
    pytest.seed = None if config.getoption("seed") == "" else eval(config.getoption("seed"))
    pytest.prob_size = [eval(x) for x in config.getoption("size").split(",")]


@pytest.fixture
def rng():
    return np.random.default_rng(pytest.seed)


@pytest.fixture(autouse=True)
def reset_config():
    yield
    gf_config.set_defaults()
