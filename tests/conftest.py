"""
Shared fixtures.
"""

import pytest

from helpers import FakeClock, POSTS_JSON, Upstream, jsonplaceholder
from postgate.models import Post


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upstream() -> Upstream:
    return Upstream(jsonplaceholder)


@pytest.fixture
def posts() -> list[Post]:
    return [Post.model_validate(item) for item in POSTS_JSON]
