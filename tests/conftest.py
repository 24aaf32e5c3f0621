import pytest

from mock_routing.config import config_instant
from mock_routing.data import StructuredData
from mock_routing.routing import MockRouting
from mock_routing.store import DataStore
from mock_routing.utils import NameType, ed25519_keypair
from mock_routing.validator import MutationValidator

TYPE_TAG = 999


@pytest.fixture
def owner_keys():
    """Three owners A, B, C as (secret, public) key pairs."""
    return {name: ed25519_keypair() for name in "ABC"}


@pytest.fixture
def store():
    return DataStore()


@pytest.fixture
def validator(store):
    return MutationValidator(store)


@pytest.fixture
def routing():
    return MockRouting.from_config(config_instant())


@pytest.fixture
def make_version(owner_keys):
    identifier = NameType.random()
    owners = [vk for _, vk in owner_keys.values()]

    def _make(version, payload, signers="", identifier=identifier, type_tag=TYPE_TAG):
        return StructuredData.new(type_tag, identifier, version, payload, owners,
                                  signing_keys=[owner_keys[s][0] for s in signers])
    return _make
