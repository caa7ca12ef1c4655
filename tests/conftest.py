import pytest

from aqiops.models import Coordinate

from tests.helpers import BANGKOK


@pytest.fixture()
def bangkok() -> Coordinate:
    return BANGKOK
