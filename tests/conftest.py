import pytest

from pose_builders import FakeClock


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
