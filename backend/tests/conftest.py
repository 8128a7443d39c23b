import pytest

from fakes import FakeOracle, FakeSocket, make_trips
from tripsync.auth.users import Identity
from tripsync.realtime.manager import WSManager
from tripsync.realtime.presence import PresenceRegistry
from tripsync.realtime.tracking import LocationTrackingService


@pytest.fixture
def oracle():
    return FakeOracle(make_trips())


@pytest.fixture
def registry():
    return PresenceRegistry()


@pytest.fixture
def router():
    return WSManager()


@pytest.fixture
def tracking(registry, router, oracle):
    return LocationTrackingService(registry, router, oracle)


@pytest.fixture
def connect(router):
    def _connect(identity: Identity):
        return router.register(FakeSocket(), identity)
    return _connect
