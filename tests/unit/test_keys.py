"""
Unit tests for cache key derivation.

Covers canonical serialization, prefix scoping, reference tags and the purge
pattern builders.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

import pytest

from querycache.core.keys import (
    args_key,
    canonical_json,
    contains_patterns,
    derive_key,
    reference_patterns,
)


class TestCanonicalJson:
    def test_key_order_does_not_matter(self):
        a = {"where": {"id": 1, "name": "x"}, "orderBy": [{"createdAt": "desc"}]}
        b = {"orderBy": [{"createdAt": "desc"}], "where": {"name": "x", "id": 1}}
        assert canonical_json(a) == canonical_json(b)

    def test_list_order_matters(self):
        assert canonical_json({"in": [1, 2]}) != canonical_json({"in": [2, 1]})

    def test_sets_are_ordered(self):
        assert canonical_json({"id": {3, 1, 2}}) == canonical_json({"id": {2, 3, 1}})
        assert canonical_json({"id": {3, 1, 2}}) == '{"id":[1,2,3]}'

    def test_tuples_serialize_like_lists(self):
        assert canonical_json({"in": (1, 2)}) == canonical_json({"in": [1, 2]})

    def test_scalar_types(self):
        out = canonical_json(
            {
                "at": datetime(2024, 1, 2, 3, 4, 5),
                "price": Decimal("9.99"),
                "uid": UUID("12345678-1234-5678-1234-567812345678"),
            }
        )
        assert '"at":"2024-01-02T03:04:05"' in out
        assert '"price":"9.99"' in out
        assert '"uid":"12345678-1234-5678-1234-567812345678"' in out

    def test_unsupported_type_raises(self):
        with pytest.raises(TypeError):
            canonical_json({"x": object()})


class TestDeriveKey:
    def test_same_arguments_same_key(self):
        assert derive_key("Post", {"id": 1}) == derive_key("Post", {"id": 1})

    def test_key_is_prefixed_digest(self):
        derived = derive_key("Post", {"id": 1})
        prefix, digest = derived.cache_key.split("~")
        assert prefix == "Post"
        assert len(digest) == 64  # SHA256 hex digest length

    def test_prefix_scopes_key(self):
        assert derive_key("Post", {"id": 1}).cache_key != derive_key("Comment", {"id": 1}).cache_key

    def test_structurally_different_arguments_differ(self):
        assert derive_key("Post", {"id": 1}).cache_key != derive_key("Post", {"id": "1"}).cache_key
        assert derive_key("Post", {"id": 1}).cache_key != derive_key("Post", [{"id": 1}]).cache_key
        assert derive_key("Post", None).cache_key != derive_key("Post", {}).cache_key

    def test_reference_tag(self):
        derived = derive_key("posts", {"id": 1})
        assert derived.references == (f"posts~{args_key({'id': 1})}",)

    def test_unhashed_key_embeds_arguments(self):
        derived = derive_key("User", {"include": {"Post": True}}, hash_keys=False)
        assert derived.cache_key == 'User~{"include":{"Post":true}}'


class TestPatterns:
    def test_reference_patterns(self):
        assert reference_patterns("Post") == ["*Post~*", "Post~*"]

    def test_contains_patterns(self):
        assert contains_patterns("Post") == ['*"Post":*', '*"post":*']

    def test_contains_patterns_lower_case_name(self):
        assert contains_patterns("post") == ['*"post":*']
