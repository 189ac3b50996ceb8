"""Tests for grpc_harness.metadata."""
import pytest
from multidict import MultiDict

from grpc_harness.metadata import Metadata


def test_get_returns_all_values_in_insertion_order() -> None:
    metadata = Metadata()
    metadata.add("key", "one")
    metadata.add("other", "x")
    metadata.add("key", "two")
    assert metadata.get("key") == ["one", "two"]
    assert metadata.get("other") == ["x"]
    assert metadata.get("missing") == []
    assert metadata.keys() == ["key", "other"]
    assert len(metadata) == 3


def test_set_replaces_values() -> None:
    metadata = Metadata([("key", "one"), ("key", "two")])
    metadata.set("key", "three")
    assert metadata.get("key") == ["three"]


def test_remove() -> None:
    metadata = Metadata({"key": "one", "other": "two"})
    metadata.remove("key")
    metadata.remove("missing")
    assert "key" not in metadata
    assert metadata.items() == [("other", "two")]


def test_merge_concatenates_per_key() -> None:
    explicit = Metadata([("x-token", "a"), ("x-trace-bin", b"\x01")])
    generated = Metadata([("x-token", "b")])
    explicit.merge(generated)
    assert explicit.get("x-token") == ["a", "b"]
    assert explicit.get("x-trace-bin") == [b"\x01"]
    assert generated.get("x-token") == ["b"]


def test_copy_is_independent() -> None:
    original = Metadata({"key": "value"})
    copy = original.copy()
    copy.add("key", "other")
    assert original.get("key") == ["value"]
    assert copy.get("key") == ["value", "other"]
    assert original != copy


def test_binary_keys_require_bytes() -> None:
    metadata = Metadata()
    with pytest.raises(TypeError):
        metadata.add("x-data-bin", "not bytes")
    with pytest.raises(TypeError):
        metadata.add("x-data", b"bytes")
    metadata.add("x-data-bin", b"\xab\xab\xab")
    assert metadata.get("x-data-bin") == [bytes.fromhex("ababab")]


@pytest.mark.parametrize("key", ["", "Upper", "with space", "grpc-status", "ключ"])
def test_invalid_keys(key: str) -> None:
    with pytest.raises(ValueError):
        Metadata().add(key, "value")


@pytest.mark.parametrize("value", ["", "line\nbreak", "café"])
def test_invalid_string_values(value: str) -> None:
    with pytest.raises(ValueError):
        Metadata().add("key", value)


def test_keys_are_case_sensitive_lookups() -> None:
    metadata = Metadata({"key": "value"})
    assert metadata.get("KEY") == []


def test_from_multidict() -> None:
    received = MultiDict([("a", "1"), ("b-bin", b"\x00"), ("a", "2")])
    metadata = Metadata.from_multidict(received)
    assert metadata.items() == [("a", "1"), ("b-bin", b"\x00"), ("a", "2")]
    assert Metadata.from_multidict(None) == Metadata()


def test_to_multidict_is_a_copy() -> None:
    metadata = Metadata({"a": "1"})
    exported = metadata.to_multidict()
    exported.add("a", "2")
    assert metadata.get("a") == ["1"]
