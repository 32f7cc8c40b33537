"""Tests for the blueprint builder."""
from schemaforge.generators.migration.blueprint import (
    BlueprintOptions,
    build_blueprint,
    primary_key_column,
    property_to_column,
)
from schemaforge.schemas.entities import IdType, ScalarProperty
from schemaforge.schemas.loader import load_compound_types, load_entities


def _entities(raw):
    return load_entities(raw)


def _build(raw, name, options=None):
    entities = _entities(raw)
    return build_blueprint(entities[name], entities, options)


class TestScalarColumns:
    """Test scalar property mapping."""

    def test_basic_table(self):
        """An ordinary entity gets an id, its columns and timestamps."""
        blueprint = _build({
            "User": {
                "properties": {
                    "email": {"type": "Email", "unique": True},
                    "name": {"type": "String", "length": 100},
                },
            },
        }, "User")

        assert blueprint.table_name == "users"
        assert blueprint.column_names == ["id", "email", "name", "created_at", "updated_at"]
        assert blueprint.primary_key == ["id"]

        id_column = blueprint.column("id")
        assert id_column.method == "id"
        assert id_column.args == ()

        email = blueprint.column("email")
        assert email.method == "string"
        assert email.has_modifier("unique")
        assert not email.has_modifier("nullable")

        assert blueprint.column("name").args == ("name", 100)
        assert blueprint.column("created_at").has_modifier("nullable")

    def test_decimal_defaults(self):
        column = property_to_column("price", ScalarProperty(type="Decimal"))
        assert column.method == "decimal"
        assert column.args == ("price", 8, 2)

        column = property_to_column("rate", ScalarProperty(type="Decimal", precision=5, scale=3))
        assert column.args == ("rate", 5, 3)

    def test_default_keeps_native_type(self):
        """A false default stays a bool, not the string "false"."""
        column = property_to_column("isActive", ScalarProperty(type="Boolean", default=False))
        assert column.name == "is_active"
        assert column.modifier("default").args[0] is False

    def test_unknown_type_falls_back_to_string(self):
        column = property_to_column("shape", ScalarProperty(type="Geometry"))
        assert column.method == "string"

    def test_file_types_have_no_column(self):
        blueprint = _build({
            "User": {"properties": {"avatar": {"type": "File"}, "photos": {"type": "MultiFile"}}},
        }, "User")
        assert "avatar" not in blueprint.column_names
        assert "photos" not in blueprint.column_names

    def test_unsigned_only_for_integers(self):
        column = property_to_column("count", ScalarProperty(type="Int", unsigned=True))
        assert column.has_modifier("unsigned")
        column = property_to_column("label", ScalarProperty(type="String", unsigned=True))
        assert not column.has_modifier("unsigned")

    def test_use_current_on_timestamps(self):
        column = property_to_column(
            "publishedAt", ScalarProperty(type="Timestamp", use_current=True, use_current_on_update=True)
        )
        assert [m.method for m in column.modifiers] == ["useCurrent", "useCurrentOnUpdate"]

    def test_enum_and_enum_ref(self):
        blueprint = _build({
            "Post": {
                "properties": {
                    "status": {"type": "Enum", "enum": ["draft", "published"], "default": "draft"},
                    "color": {"type": "EnumRef", "enum": "Color"},
                },
            },
        }, "Post")

        status = blueprint.column("status")
        assert status.method == "enum"
        assert status.args == ("status", ("draft", "published"))
        assert status.modifier("default").args == ("draft",)

        color = blueprint.column("color")
        assert color.method == "string"
        assert color.args == ("color", 50)

    def test_localized_display_name_becomes_comment(self):
        blueprint = _build({
            "User": {"properties": {"name": {"type": "String", "displayName": {"ja": "名前", "en": "Name"}}}},
        }, "User")
        assert blueprint.column("name").modifier("comment").args == ("Name",)

    def test_options(self):
        blueprint = _build({
            "Person": {
                "properties": {"email": {"type": "String"}},
                "options": {"tableName": "members", "timestamps": False, "softDelete": True},
            },
        }, "Person")
        assert blueprint.table_name == "members"
        assert blueprint.column_names == ["id", "email", "deleted_at"]


class TestPrimaryKeys:
    """Test primary key strategies."""

    def test_primary_key_column_by_id_type(self):
        assert primary_key_column(IdType.INT).method == "increments"
        assert primary_key_column(IdType.BIG_INT).method == "id"

        uuid_column = primary_key_column(IdType.UUID)
        assert uuid_column.method == "uuid"
        assert uuid_column.has_modifier("primary")

        string_column = primary_key_column(IdType.STRING)
        assert string_column.args == ("id", 255)
        assert string_column.has_modifier("primary")

    def test_composite_key_has_no_column_level_primary(self):
        """A key with two or more members is declared once on the table."""
        blueprint = _build({
            "Translation": {
                "properties": {
                    "locale": {"type": "String", "primary": True},
                    "key": {"type": "String", "primary": True},
                    "text": {"type": "Text"},
                },
                "options": {"id": False},
            },
        }, "Translation")

        assert blueprint.primary_key == ["locale", "key"]
        assert not any(c.has_modifier("primary") for c in blueprint.columns), \
            "composite key members must not carry a primary modifier"

    def test_single_primary_property_keeps_modifier(self):
        blueprint = _build({
            "Country": {"properties": {"code": {"type": "String", "primary": True}}, "options": {"id": False}},
        }, "Country")
        assert blueprint.primary_key == ["code"]
        assert blueprint.column("code").has_modifier("primary")


class TestForeignKeys:
    """Test owning ManyToOne/OneToOne associations."""

    def test_many_to_one_column_constraint_and_index(self):
        blueprint = _build({
            "User": {"properties": {}},
            "Post": {"properties": {"author": {"type": "Association", "relation": "ManyToOne", "target": "User"}}},
        }, "Post")

        column = blueprint.column("author_id")
        assert column.method == "unsignedBigInteger"
        assert not column.has_modifier("nullable"), "unspecified nullability means NOT NULL"

        assert len(blueprint.foreign_keys) == 1
        fk = blueprint.foreign_keys[0]
        assert fk.columns == ("author_id",)
        assert fk.on == "users"
        assert fk.references == "id"
        assert fk.on_delete == "restrict"
        assert fk.on_update == "cascade"

        assert [ix.columns for ix in blueprint.indexes] == [("author_id",)]

    def test_column_type_follows_target_id_type(self):
        entities = _entities({
            "Account": {"properties": {}, "options": {"idType": "Uuid"}},
            "Region": {"properties": {}, "options": {"idType": "Int"}},
            "Code": {"properties": {}, "options": {"idType": "String"}},
            "Profile": {
                "properties": {
                    "account": {"type": "Association", "relation": "OneToOne", "target": "Account"},
                    "region": {"type": "Association", "relation": "ManyToOne", "target": "Region"},
                    "code": {"type": "Association", "relation": "ManyToOne", "target": "Code"},
                },
            },
        })
        blueprint = build_blueprint(entities["Profile"], entities)
        assert blueprint.column("account_id").method == "uuid"
        assert blueprint.column("region_id").method == "unsignedInteger"
        assert blueprint.column("code_id").method == "string"

    def test_explicit_nullable_and_actions(self):
        blueprint = _build({
            "User": {"properties": {}},
            "Post": {
                "properties": {
                    "editor": {
                        "type": "Association", "relation": "ManyToOne", "target": "User",
                        "nullable": True, "onDelete": "set null",
                    },
                },
            },
        }, "Post")
        assert blueprint.column("editor_id").has_modifier("nullable")
        assert blueprint.foreign_keys[0].on_delete == "set null"

    def test_unknown_target_still_gets_best_effort_column(self):
        blueprint = _build({
            "Post": {"properties": {"ghost": {"type": "Association", "relation": "ManyToOne", "target": "Ghost"}}},
        }, "Post")
        assert blueprint.column("ghost_id").method == "unsignedBigInteger"
        assert blueprint.foreign_keys[0].on == "ghosts"

    def test_target_table_name_override(self):
        blueprint = _build({
            "Person": {"properties": {}, "options": {"tableName": "members"}},
            "Post": {"properties": {"author": {"type": "Association", "relation": "ManyToOne", "target": "Person"}}},
        }, "Post")
        assert blueprint.foreign_keys[0].on == "members"

    def test_inverse_side_has_no_column(self):
        blueprint = _build({
            "User": {
                "properties": {
                    "profile": {"type": "Association", "relation": "OneToOne", "target": "Profile", "mappedBy": "user"},
                    "posts": {"type": "Association", "relation": "OneToMany", "target": "Post", "mappedBy": "author"},
                },
            },
        }, "User")
        assert blueprint.column_names == ["id", "created_at", "updated_at"]
        assert blueprint.foreign_keys == []

    def test_declared_column_suppresses_synthesized_one(self):
        blueprint = _build({
            "User": {"properties": {}},
            "Post": {
                "properties": {
                    "authorId": {"type": "BigInt", "unsigned": True},
                    "author": {"type": "Association", "relation": "ManyToOne", "target": "User"},
                },
            },
        }, "Post")
        assert blueprint.column_names.count("author_id") == 1
        assert blueprint.column("author_id").method == "bigInteger"
        assert len(blueprint.foreign_keys) == 1


class TestPolymorphicColumns:
    """Test MorphTo associations."""

    def test_mixed_target_id_types_use_string_36(self):
        blueprint = _build({
            "Post": {"properties": {}},
            "Video": {"properties": {}, "options": {"idType": "Uuid"}},
            "Comment": {
                "properties": {
                    "commentable": {"type": "Association", "relation": "MorphTo", "targets": ["Post", "Video"]},
                },
            },
        }, "Comment")

        id_column = blueprint.column("commentable_id")
        assert id_column.method == "string"
        assert id_column.args == ("commentable_id", 36)
        assert id_column.has_modifier("nullable")

        type_column = blueprint.column("commentable_type")
        assert type_column.method == "enum"
        assert type_column.args == ("commentable_type", ("Post", "Video"))

        assert ("commentable_type", "commentable_id") in [ix.columns for ix in blueprint.indexes]

    def test_uniform_big_int_targets_use_unsigned_big_integer(self):
        blueprint = _build({
            "Post": {"properties": {}},
            "Video": {"properties": {}},
            "Comment": {
                "properties": {
                    "commentable": {
                        "type": "Association", "relation": "MorphTo",
                        "targets": ["Post", "Video"], "nullable": False,
                    },
                },
            },
        }, "Comment")
        id_column = blueprint.column("commentable_id")
        assert id_column.method == "unsignedBigInteger"
        assert not id_column.has_modifier("nullable")


class TestCompoundTypes:
    """Test compound type expansion."""

    COMPOUND_TYPES = {
        "JapaneseName": {
            "expand": [
                {"suffix": "Lastname", "sql": {"sqlType": "VARCHAR", "length": 50}},
                {"suffix": "Firstname", "sql": {"sqlType": "VARCHAR", "length": 50}},
                {"suffix": "KanaLastname", "sql": {"sqlType": "VARCHAR", "length": 100, "nullable": True}},
            ],
        },
        "Address": {
            "expand": [
                {"suffix": "Prefecture", "enumRef": "Prefecture"},
                {"suffix": "PostalCode", "sql": {"sqlType": "VARCHAR", "length": 8}},
            ],
        },
    }

    def _build(self, properties, enums=None):
        compound_types = load_compound_types(self.COMPOUND_TYPES)
        entities = load_entities({"Customer": {"properties": properties}}, compound_types)
        options = BlueprintOptions(compound_types=compound_types, enums=enums or {})
        return build_blueprint(entities["Customer"], entities, options)

    def test_expansion_and_nullable_precedence(self):
        """Field override beats the compound field default, which beats the parent."""
        blueprint = self._build({
            "name": {"type": "JapaneseName", "displayName": "Name", "fields": {"Firstname": {"nullable": True}}},
        })

        assert blueprint.column_names[1:4] == ["name_lastname", "name_firstname", "name_kana_lastname"]
        assert blueprint.column("name_lastname").args == ("name_lastname", 50)
        assert not blueprint.column("name_lastname").has_modifier("nullable")
        assert blueprint.column("name_firstname").has_modifier("nullable")
        assert blueprint.column("name_kana_lastname").has_modifier("nullable")
        assert blueprint.column("name_lastname").modifier("comment").args == ("Name (Lastname)",)

    def test_length_override(self):
        blueprint = self._build({
            "name": {"type": "JapaneseName", "fields": {"Lastname": {"length": 80}}},
        })
        assert blueprint.column("name_lastname").args == ("name_lastname", 80)

    def test_enum_ref_field_uses_registry(self):
        blueprint = self._build(
            {"address": {"type": "Address"}},
            enums={"Prefecture": ["tokyo", "osaka"]},
        )
        prefecture = blueprint.column("address_prefecture")
        assert prefecture.method == "enum"
        assert prefecture.args == ("address_prefecture", ("tokyo", "osaka"))

    def test_enum_ref_field_without_registry_is_string(self):
        blueprint = self._build({"address": {"type": "Address"}})
        assert blueprint.column("address_prefecture").args == ("address_prefecture", 50)


class TestIndexes:
    """Test custom indexes and deduplication."""

    def test_custom_indexes_map_association_names(self):
        blueprint = _build({
            "User": {"properties": {}},
            "Post": {
                "properties": {
                    "author": {"type": "Association", "relation": "ManyToOne", "target": "User"},
                    "status": {"type": "String"},
                    "slug": {"type": "String"},
                },
                "options": {
                    "indexes": ["author", {"columns": ["author", "status"]}],
                    "unique": ["slug"],
                },
            },
        }, "Post")

        keys = [ix.key for ix in blueprint.indexes]
        assert keys == [
            (("author_id",), False),
            (("author_id", "status"), False),
            (("slug",), True),
        ], "duplicate author_id index must be dropped"


class TestExplicitPivot:
    """Test explicit join entities."""

    def test_pivot_for_builds_composite_key(self):
        blueprint = _build({
            "Role": {"properties": {}},
            "User": {"properties": {}, "options": {"idType": "Uuid"}},
            "RoleAssignment": {
                "pivotFor": ["Role", "User"],
                "properties": {"grantedAt": {"type": "Timestamp", "nullable": True}},
                "options": {"id": False, "tableName": "role_assignments"},
            },
        }, "RoleAssignment")

        assert blueprint.primary_key == ["role_id", "user_id"]
        assert blueprint.column("role_id").method == "unsignedBigInteger"
        assert blueprint.column("user_id").method == "uuid"
        assert [fk.on for fk in blueprint.foreign_keys] == ["roles", "users"]
        assert all(fk.on_delete == "cascade" for fk in blueprint.foreign_keys)
