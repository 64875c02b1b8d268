"""Tests for identifier policies."""

import mongomock
import pytest
from bson import ObjectId

from errors import MalformedIdentifier
from identifiers import ObjectIdPolicy, SequentialIdPolicy, policy_for


@pytest.fixture
def collection():
    return mongomock.MongoClient()["ids"]["student"]


class TestSequentialPolicy:
    def test_parse_accepts_digits_and_ints(self):
        policy = SequentialIdPolicy()
        assert policy.parse("42") == 42
        assert policy.parse(7) == 7

    @pytest.mark.parametrize("token", ["0", "-3", "abc", "1.5", "", True, None, 0, "99999999999999999999", 2 ** 63])
    def test_parse_rejects_malformed(self, token):
        with pytest.raises(MalformedIdentifier):
            SequentialIdPolicy().parse(token)

    def test_first_id_is_one(self, collection):
        next_id = SequentialIdPolicy().allocator(collection)
        assert next_id() == 1

    def test_next_id_is_max_plus_one(self, collection):
        collection.insert_many([{"_id": 1}, {"_id": 5}, {"_id": 3}])
        next_id = SequentialIdPolicy().allocator(collection)
        assert next_id() == 6

    def test_nested_counter_is_global_across_documents(self, collection):
        collection.insert_many([
            {"_id": 1, "tests": [{"id": 1}, {"id": 4}]},
            {"_id": 2, "tests": [{"id": 9}]},
            {"_id": 3, "tests": []},
        ])
        assert SequentialIdPolicy().allocate_nested(collection, "tests") == 10

    def test_nested_counter_starts_at_one(self, collection):
        collection.insert_one({"_id": 1, "tests": []})
        assert SequentialIdPolicy().allocate_nested(collection, "tests") == 1


class TestObjectIdPolicy:
    def test_parse_round_trips(self):
        oid = ObjectId()
        policy = ObjectIdPolicy()
        assert policy.parse(str(oid)) == oid
        assert policy.render(oid) == str(oid)

    @pytest.mark.parametrize("token", ["123", "not-an-object-id", "zz" * 12, 12])
    def test_parse_rejects_malformed(self, token):
        with pytest.raises(MalformedIdentifier):
            ObjectIdPolicy().parse(token)

    def test_parse_rejects_uppercase_hex(self):
        token = "65a1b2c3d4e5f60718293a4b".upper()
        with pytest.raises(MalformedIdentifier):
            ObjectIdPolicy().parse(token)

    def test_store_assigns_top_level_ids(self, collection):
        assert ObjectIdPolicy().allocator(collection) is None

    def test_nested_ids_are_unique(self, collection):
        policy = ObjectIdPolicy()
        assert policy.allocate_nested(collection, "tests") != policy.allocate_nested(collection, "tests")


def test_policy_for_known_names():
    assert isinstance(policy_for("sequential"), SequentialIdPolicy)
    assert isinstance(policy_for("objectid"), ObjectIdPolicy)


def test_policy_for_unknown_name():
    with pytest.raises(ValueError):
        policy_for("uuid")
