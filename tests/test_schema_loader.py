"""Tests for loading raw schema documents."""
from pathlib import Path

import pytest
from pydantic import ValidationError

from schemaforge.core.errors import SchemaDefinitionError, SchemaForgeError
from schemaforge.schemas.changes import load_schema_change
from schemaforge.schemas.entities import (
    AssociationProperty,
    CompoundProperty,
    EnumProperty,
    EnumRefProperty,
    IdType,
    IndexOption,
    RelationKind,
    ScalarProperty,
)
from schemaforge.schemas.loader import (
    enum_registry,
    load_compound_types,
    load_entity,
    parse_entities_yaml,
    parse_property,
)

FIXTURES_DIR = Path(__file__).parent / "fixtures"

COMPOUND_TYPES = load_compound_types({
    "JapaneseName": {"expand": [
        {"suffix": "Lastname", "sql": {"sqlType": "VARCHAR", "length": 50}},
        {"suffix": "Firstname", "sql": {"sqlType": "VARCHAR", "length": 50}},
    ]},
})


class TestParseProperty:
    """Raw property mappings dispatch on their type."""

    def test_scalar(self):
        prop = parse_property({"type": "String", "length": 80, "nullable": True, "displayName": "Title"})
        assert isinstance(prop, ScalarProperty)
        assert prop.length == 80
        assert prop.nullable is True
        assert prop.display_name == "Title"

    def test_default_keeps_native_type(self):
        prop = parse_property({"type": "Boolean", "default": False})
        assert prop.default is False

    def test_enum_and_enum_ref(self):
        enum = parse_property({"type": "Enum", "enum": ["a", "b"]})
        ref = parse_property({"type": "EnumRef", "enum": "Prefecture"})
        assert isinstance(enum, EnumProperty)
        assert enum.values == ["a", "b"]
        assert isinstance(ref, EnumRefProperty)
        assert ref.enum_name == "Prefecture"

    def test_association(self):
        prop = parse_property({
            "type": "Association",
            "relation": "ManyToMany",
            "target": "Role",
            "joinTable": "user_roles",
            "pivotFields": {"expiresAt": {"type": "Timestamp", "nullable": True}},
        })
        assert isinstance(prop, AssociationProperty)
        assert prop.relation == RelationKind.MANY_TO_MANY
        assert prop.join_table == "user_roles"
        assert prop.nullable is None, "unspecified nullability stays unspecified"
        assert list(prop.pivot_fields) == ["expiresAt"]

    def test_snake_case_keys_are_accepted(self):
        prop = parse_property({"type": "Association", "relation": "ManyToOne", "target": "User", "on_delete": "cascade"})
        assert prop.on_delete == "cascade"

    def test_registered_compound_type(self):
        prop = parse_property({"type": "JapaneseName", "nullable": True}, COMPOUND_TYPES)
        assert isinstance(prop, CompoundProperty)
        assert prop.type == "JapaneseName"

    def test_unregistered_type_is_scalar(self):
        assert isinstance(parse_property({"type": "JapaneseName"}), ScalarProperty)

    def test_missing_type_raises(self):
        with pytest.raises(SchemaDefinitionError) as exc_info:
            parse_property({"length": 10}, source="User.name")
        assert str(exc_info.value).startswith("User.name:")
        assert exc_info.value.source == "User.name"

    def test_non_mapping_raises(self):
        with pytest.raises(SchemaDefinitionError):
            parse_property("String")

    def test_invalid_relation_raises(self):
        with pytest.raises(SchemaForgeError):
            parse_property({"type": "Association", "relation": "ManyToSome"})


class TestLoadEntity:
    """Test whole-document loading."""

    def test_options(self):
        entity = load_entity("Account", {
            "properties": {"code": {"type": "String"}},
            "options": {
                "tableName": "tenant_accounts",
                "idType": "Uuid",
                "softDelete": True,
                "timestamps": False,
                "indexes": ["code", {"columns": ["code", "createdAt"], "unique": True}],
            },
        })
        assert entity.options.table_name == "tenant_accounts"
        assert entity.id_type == IdType.UUID
        assert entity.options.soft_delete is True
        assert entity.options.timestamps is False
        assert entity.options.indexes[0] == "code"
        assert isinstance(entity.options.indexes[1], IndexOption)

    def test_default_id_type(self):
        assert load_entity("User", {"properties": {}}).id_type == IdType.BIG_INT

    def test_flat_unique_list_is_one_constraint(self):
        entity = load_entity("Seat", {"properties": {}, "options": {"unique": ["row", "number"]}})
        assert entity.options.unique == [["row", "number"]]

    def test_top_level_pivot_for_is_folded(self):
        entity = load_entity("Enrollment", {"pivotFor": ["Student", "Course"], "properties": {}})
        assert entity.kind == "pivot"
        assert entity.pivot_for == ("Student", "Course")

    def test_property_errors_name_their_source(self):
        with pytest.raises(SchemaDefinitionError) as exc_info:
            load_entity("User", {"properties": {"email": {"unique": True}}})
        assert exc_info.value.source == "User.email"

    def test_properties_must_be_a_mapping(self):
        with pytest.raises(SchemaDefinitionError):
            load_entity("User", {"properties": ["email"]})


class TestYamlLoading:
    """Test loading the blog fixture."""

    def test_declaration_order_is_preserved(self):
        entities = parse_entities_yaml((FIXTURES_DIR / "blog_schemas.yaml").read_text(encoding="utf-8"))
        assert list(entities) == ["Comment", "Post", "User", "Role", "Tag", "PostStatus"]
        assert list(entities["User"].properties) == ["email", "name", "avatar", "roles"]

    def test_enum_entities_form_a_registry(self):
        entities = parse_entities_yaml((FIXTURES_DIR / "blog_schemas.yaml").read_text(encoding="utf-8"))
        assert entities["PostStatus"].is_table is False
        assert enum_registry(entities) == {"PostStatus": ["draft", "published"]}

    def test_invalid_yaml_raises(self):
        with pytest.raises(SchemaDefinitionError):
            parse_entities_yaml("User: [unclosed")

    def test_non_mapping_document_raises(self):
        with pytest.raises(SchemaDefinitionError):
            parse_entities_yaml("- User\n- Post\n")

    def test_empty_document(self):
        assert parse_entities_yaml("") == {}


class TestSchemaChange:
    """Test change record loading."""

    def test_snapshots_are_parsed(self):
        change = load_schema_change({
            "schemaName": "User",
            "changeType": "modified",
            "columnChanges": [
                {
                    "column": "name", "changeType": "modified",
                    "previousDef": {"type": "String"},
                    "currentDef": {"type": "JapaneseName"},
                },
            ],
            "optionChanges": {"softDelete": {"from": False, "to": True}},
        }, COMPOUND_TYPES)
        column_change = change.column_changes[0]
        assert isinstance(column_change.previous_def, ScalarProperty)
        assert isinstance(column_change.current_def, CompoundProperty)
        assert change.option_changes.soft_delete.transitions is True

    def test_records_are_immutable(self):
        change = load_schema_change({"schemaName": "User", "changeType": "removed"})
        with pytest.raises(ValidationError):
            change.schema_name = "Account"

    def test_unknown_change_type_raises(self):
        with pytest.raises(SchemaDefinitionError) as exc_info:
            load_schema_change({"schemaName": "User", "changeType": "exploded"})
        assert exc_info.value.source == "User"

    def test_bad_snapshot_raises(self):
        with pytest.raises(SchemaForgeError):
            load_schema_change({
                "schemaName": "User", "changeType": "modified",
                "columnChanges": [{"column": "email", "changeType": "added", "currentDef": {"nullable": True}}],
            })
