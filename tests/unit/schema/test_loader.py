"""Schema loading from dicts, JSON, and YAML."""

import json
from pathlib import Path

import pytest

from protoguard.errors import SchemaError
from protoguard.models.schema import Cardinality, FieldType
from protoguard.schema import loader
from protoguard.schema.loader import load_schema, load_schema_file, schema_from_dict


class TestSchemaFromDict:
    def test_minimal_document(self) -> None:
        schema = schema_from_dict({
            "package": "p",
            "messages": [{"name": "M", "fields": [{"name": "tags", "type": "string", "label": "repeated"}]}],
        })
        assert schema.package == "p"
        field = schema.messages[0].field("tags")
        assert field.type == FieldType.STRING
        assert field.label == Cardinality.REPEATED

    def test_not_a_mapping(self) -> None:
        with pytest.raises(SchemaError, match="must be a mapping"):
            schema_from_dict(["not", "a", "dict"])

    @pytest.mark.parametrize(
        "field, fragment",
        [
            ({"name": "x", "type": "varchar"}, "type"),
            ({"name": "x", "type": "message"}, "needs 'type_name'"),
            ({"name": "x", "type": "string", "label": "map"}, "needs 'key_type'"),
            ({"name": "x", "type": "string", "label": "map", "key_type": "double"}, "cannot use double keys"),
            ({"name": "x", "type": "string", "key_type": "string"}, "only valid on map fields"),
            ({"name": "x", "type": "string", "label": "repeated", "optional": True}, "'optional' only applies"),
            ({"name": "not valid", "type": "string"}, "not a valid field name"),
        ],
    )
    def test_invalid_fields(self, field: dict, fragment: str) -> None:
        with pytest.raises(SchemaError, match=fragment):
            schema_from_dict({"messages": [{"name": "M", "fields": [field]}]})

    def test_error_location_points_into_document(self) -> None:
        with pytest.raises(SchemaError) as exc_info:
            schema_from_dict(
                {"messages": [{"name": "M", "fields": [{"name": "x", "type": "varchar"}]}]},
                source="inline",
            )
        assert exc_info.value.location.startswith("inline:messages.0.fields.0")

    def test_oneof_members_have_presence(self) -> None:
        schema = schema_from_dict({"messages": [{
            "name": "M",
            "fields": [{"name": "a", "type": "string"}, {"name": "b", "type": "int32"}, {"name": "c", "type": "bool"}],
            "oneofs": [{"name": "choice", "fields": ["a", "b"]}],
        }]})
        message = schema.messages[0]
        assert message.field("a").has_presence
        assert message.field("b").has_presence
        assert not message.field("c").has_presence

    def test_descriptors_are_frozen(self) -> None:
        schema = schema_from_dict({"messages": [{"name": "M"}]})
        with pytest.raises(ValueError):
            schema.messages[0].name = "N"

    def test_qualify(self) -> None:
        schema = schema_from_dict({"package": "acme"})
        assert schema.qualify("User") == "acme.User"
        assert schema.qualify("acme.User") == "acme.User"
        assert schema.qualify(".other.Thing") == "other.Thing"


class TestFiles:
    def test_yaml_file(self, fixtures_dir: Path) -> None:
        schema = load_schema_file(fixtures_dir / "acme.yaml")
        assert schema.package == "acme"
        assert schema.source.endswith("acme.yaml")
        assert [m.name for m in schema.messages][:1] == ["User"]

    def test_json_file(self, fixtures_dir: Path) -> None:
        schema = load_schema_file(fixtures_dir / "multi" / "b_orders.json")
        assert schema.package == "acme.orders"
        assert schema.messages[0].required == ("total",)

    def test_directory_is_loaded_in_name_order(self, fixtures_dir: Path) -> None:
        schemas = load_schema(fixtures_dir / "multi")
        assert [s.package for s in schemas] == ["acme.common", "acme.orders"]

    def test_files_are_cached(self, fixtures_dir: Path) -> None:
        first = load_schema_file(fixtures_dir / "acme.yaml")
        assert load_schema_file(str(fixtures_dir / "acme.yaml")) is first
        loader.clear_cache()
        assert load_schema_file(fixtures_dir / "acme.yaml") is not first

    def test_unsupported_suffix(self, tmp_path: Path) -> None:
        path = tmp_path / "schema.txt"
        path.write_text("package: x")
        with pytest.raises(SchemaError, match="unsupported schema file type '.txt'"):
            load_schema_file(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(SchemaError, match="not found"):
            load_schema_file(tmp_path / "missing.yaml")

    def test_unparseable_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("messages: [unclosed")
        with pytest.raises(SchemaError, match="cannot parse schema file") as exc_info:
            load_schema_file(path)
        assert exc_info.value.location == str(path.resolve())

    def test_unparseable_json(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{")
        with pytest.raises(SchemaError, match="cannot parse schema file"):
            load_schema_file(path)

    def test_invalid_utf8(self, tmp_path: Path) -> None:
        path = tmp_path / "latin.yaml"
        path.write_bytes(b"package: \xff\xfe\n")
        with pytest.raises(SchemaError, match="cannot read schema file") as exc_info:
            load_schema(path)
        assert exc_info.value.location == str(path.resolve())

    def test_validation_error_names_file(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"messages": [{"name": "M", "fields": [{"name": "x"}]}]}))
        with pytest.raises(SchemaError) as exc_info:
            load_schema_file(path)
        assert exc_info.value.location.startswith(str(path.resolve()))

    def test_directory_skips_other_files(self, tmp_path: Path) -> None:
        (tmp_path / "a.yaml").write_text("package: a\n")
        (tmp_path / "notes.md").write_text("# notes\n")
        schemas = load_schema(tmp_path)
        assert [s.package for s in schemas] == ["a"]
