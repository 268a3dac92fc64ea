from __future__ import annotations

from dataclasses import dataclass

import pytest

from remote_transport.core.registry import EntityInformation, EntityRegistry, RegistryError, attribute_accessor


@dataclass
class User:
    id: int
    name: str


@dataclass
class Person:
    person_id: int
    name: str


def test_information_derives_defaults():
    information = EntityInformation(User)

    assert information.resource_path == "/users"
    assert information.resource_name == "users"
    assert information.id_field == "id"
    assert information.has_base_url_override is False
    assert information.identifier_of(User(7, "Ada")) == 7
    assert information.identifier_of(None) is None


def test_blank_base_url_is_not_an_override():
    assert EntityInformation(User, base_url="  ").has_base_url_override is False
    assert EntityInformation(User, base_url="http://users.internal").has_base_url_override is True


def test_attribute_accessor_reads_mappings_and_objects():
    read_name = attribute_accessor("name")

    assert read_name({"name": "dict"}) == "dict"
    assert read_name(User(1, "obj")) == "obj"
    assert read_name(object()) is None


def test_registry_decorator_and_lookup():
    registry = EntityRegistry()

    @registry.resource("/people", id_field="person_id")
    @dataclass
    class Member:
        person_id: int

    information = registry.require(Member)
    assert information.resource_name == "people"
    assert information.identifier_of(Member(3)) == 3
    assert registry.find_by_resource("/people") is information
    assert Member in registry
    assert len(registry) == 1


def test_register_type_with_custom_accessor():
    registry = EntityRegistry()
    information = registry.register_type(Person, path="/persons", id_accessor=lambda person: f"p-{person.person_id}")

    assert information.identifier_of(Person(5, "Grace")) == "p-5"
    assert registry.list() == [information]

    registry.unregister(Person)
    assert registry.get(Person) is None


def test_require_unknown_type_raises():
    with pytest.raises(KeyError):
        EntityRegistry().require(User)


def test_invalid_registration_rejected():
    registry = EntityRegistry()

    with pytest.raises(RegistryError):
        registry.register(EntityInformation(User, id_field=""))
    with pytest.raises(RegistryError):
        registry.register(EntityInformation(User, resource_path="/"))
