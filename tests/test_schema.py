"""Tests for request-body schema derivation and validation."""

from stepcache.store.schema import derive_schema, validate_body


class TestDeriveSchema:
    """Tests for derive_schema."""

    def test_scalars(self):
        assert derive_schema("a") == {"type": "string"}
        assert derive_schema(1) == {"type": "integer"}
        assert derive_schema(1.5) == {"type": "number"}
        assert derive_schema(True) == {"type": "boolean"}
        assert derive_schema(None) == {"type": "null"}

    def test_object_and_array(self):
        schema = derive_schema({"user": "alice", "tags": [{"id": 1}]})
        assert schema["type"] == "object"
        assert schema["additionalProperties"] is True
        assert schema["properties"]["tags"]["items"]["properties"]["id"] == {"type": "integer"}

    def test_empty_array(self):
        assert derive_schema([]) == {"type": "array", "items": {}}


class TestValidateBody:
    """Tests for validate_body."""

    def setup_method(self):
        self.schema = derive_schema({"username": "alice", "remember": True, "attempts": 1})

    def test_matching_body(self):
        assert validate_body(self.schema, {"username": "bob", "remember": False, "attempts": 3}).ok

    def test_missing_fields_allowed(self):
        assert validate_body(self.schema, {"username": "bob"}).ok

    def test_extra_fields_allowed(self):
        assert validate_body(self.schema, {"username": "bob", "captcha": "x"}).ok

    def test_wrong_type_rejected(self):
        check = validate_body(self.schema, {"username": 42})
        assert not check.ok
        assert "username" in check.reason

    def test_nested_list_items_checked(self):
        schema = derive_schema({"items": [{"sku": "a"}]})
        assert validate_body(schema, {"items": [{"sku": "b"}, {}]}).ok
        assert not validate_body(schema, {"items": [{"sku": 1}]}).ok

    def test_non_identifier_keys(self):
        schema = derive_schema({"user-name": "a", "_id": "b", "model_config": "c"})
        assert validate_body(schema, {"user-name": "x", "_id": "y", "model_config": "z"}).ok
        assert not validate_body(schema, {"_id": 5}).ok

    def test_empty_schema_accepts_anything(self):
        assert validate_body({}, {"anything": 1}).ok
        assert validate_body(None, "raw").ok

    def test_top_level_type_mismatch(self):
        assert not validate_body(self.schema, ["not", "an", "object"]).ok
