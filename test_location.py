"""
Assignment location resolution tests
"""

import pytest

from registrationcore.core.config import RegistrationConfig
from registrationcore.core.exceptions import ConfigurationError
from registrationcore.domains.identifier.services.location_service import LocationResolver
from registrationcore.domains.patient.models.patient import Location


@pytest.fixture
def resolver(registration_config):
    return LocationResolver(registration_config)


def test_none_location(resolver):
    assert resolver.find_assignment_authority(None) is None


def test_tagged_location_returns_itself(resolver, location_tree):
    assert resolver.find_assignment_authority(location_tree["hospital"]) is location_tree["hospital"]


def test_nearest_tagged_ancestor(resolver, location_tree):
    assert resolver.find_assignment_authority(location_tree["bed"]) is location_tree["hospital"]


def test_nearest_of_several_tagged_ancestors(resolver, location_tree, registration_config):
    location_tree["ward"].tags.add(registration_config.assignment_location_tag)
    assert resolver.find_assignment_authority(location_tree["bed"]) is location_tree["ward"]


def test_no_tagged_ancestor(resolver):
    root = Location(name="Root")
    child = Location(name="Child", parent=root)
    assert resolver.find_assignment_authority(child) is None


def test_chain_exactly_at_depth_cap():
    config = RegistrationConfig(location_max_depth=3)
    resolver = LocationResolver(config)

    location = Location(name="root", tags={config.assignment_location_tag})
    for level in range(3):
        location = Location(name=f"level-{level}", parent=location)

    assert resolver.find_assignment_authority(location).name == "root"


def test_chain_deeper_than_cap():
    config = RegistrationConfig(location_max_depth=3)
    resolver = LocationResolver(config)

    location = Location(name="root", tags={config.assignment_location_tag})
    for level in range(5):
        location = Location(name=f"level-{level}", parent=location)

    with pytest.raises(ConfigurationError):
        resolver.find_assignment_authority(location)


def test_cyclic_chain_is_cut_off():
    resolver = LocationResolver(RegistrationConfig(location_max_depth=10))
    first = Location(name="first")
    second = Location(name="second", parent=first)
    first.parent = second

    with pytest.raises(ConfigurationError):
        resolver.find_assignment_authority(first)


def test_chain_one_hop_past_cap():
    config = RegistrationConfig(location_max_depth=3)
    resolver = LocationResolver(config)

    location = Location(name="root", tags={config.assignment_location_tag})
    for level in range(4):
        location = Location(name=f"level-{level}", parent=location)

    with pytest.raises(ConfigurationError):
        resolver.find_assignment_authority(location)
