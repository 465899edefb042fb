import pytest

from mt_rank.config import RunConfig, default_config


@pytest.fixture()
def cfg() -> RunConfig:
    return default_config()
