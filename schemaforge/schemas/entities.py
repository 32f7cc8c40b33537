from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from schemaforge.core.config import settings
from schemaforge.core.locale import LocalizedString


class IdType(str, Enum):
    INT = "Int"
    BIG_INT = "BigInt"
    UUID = "Uuid"
    STRING = "String"


class RelationKind(str, Enum):
    MANY_TO_ONE = "ManyToOne"
    ONE_TO_ONE = "OneToOne"
    ONE_TO_MANY = "OneToMany"
    MANY_TO_MANY = "ManyToMany"
    MORPH_TO = "MorphTo"
    MORPH_ONE = "MorphOne"
    MORPH_MANY = "MorphMany"
    MORPH_TO_MANY = "MorphToMany"


class SchemaModel(BaseModel):
    """Base for input documents: camelCase keys accepted, unknown keys ignored."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class ScalarProperty(SchemaModel):
    kind: Literal["scalar"] = "scalar"
    type: str = "String"
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    nullable: bool = False
    unique: bool = False
    default: Any = None
    unsigned: bool = False
    primary: bool = False
    use_current: bool = False
    use_current_on_update: bool = False
    display_name: Optional[LocalizedString] = None


class EnumProperty(SchemaModel):
    kind: Literal["enum"] = "enum"
    values: List[str] = Field(default_factory=list, alias="enum")
    nullable: bool = False
    unique: bool = False
    default: Any = None
    primary: bool = False
    display_name: Optional[LocalizedString] = None


class EnumRefProperty(SchemaModel):
    kind: Literal["enum_ref"] = "enum_ref"
    enum_name: Optional[str] = Field(default=None, alias="enum")
    nullable: bool = False
    unique: bool = False
    default: Any = None
    display_name: Optional[LocalizedString] = None


class PivotFieldDefinition(SchemaModel):
    """Extra column declared on a ManyToMany join table."""
    type: str = "String"
    values: List[str] = Field(default_factory=list, alias="enum")
    nullable: bool = False
    default: Any = None
    length: Optional[int] = None
    unsigned: bool = False


class AssociationProperty(SchemaModel):
    kind: Literal["association"] = "association"
    relation: RelationKind
    target: Optional[str] = None
    targets: List[str] = Field(default_factory=list)
    mapped_by: Optional[str] = None
    inversed_by: Optional[str] = None
    join_table: Optional[str] = None
    on_delete: Optional[str] = None
    on_update: Optional[str] = None
    # None means "not specified"; an unspecified FK column is NOT NULL
    nullable: Optional[bool] = None
    owning: Optional[bool] = None
    pivot_fields: Dict[str, PivotFieldDefinition] = Field(default_factory=dict)
    default: Any = None
    display_name: Optional[LocalizedString] = None

    def creates_foreign_key(self) -> bool:
        """Owning ManyToOne/OneToOne ends materialize a `<name>_id` column."""
        return (
            self.relation in (RelationKind.MANY_TO_ONE, RelationKind.ONE_TO_ONE)
            and not self.mapped_by
        )


class CompoundFieldOverride(SchemaModel):
    nullable: Optional[bool] = None
    length: Optional[int] = None


class CompoundProperty(SchemaModel):
    kind: Literal["compound"] = "compound"
    type: str
    fields: Dict[str, CompoundFieldOverride] = Field(default_factory=dict)
    nullable: Optional[bool] = None
    display_name: Optional[LocalizedString] = None


PropertyDefinition = Annotated[
    Union[ScalarProperty, EnumProperty, EnumRefProperty, AssociationProperty, CompoundProperty],
    Field(discriminator="kind"),
]


class IndexOption(SchemaModel):
    columns: List[str]
    unique: bool = False
    name: Optional[str] = None


class EntityOptions(SchemaModel):
    table_name: Optional[str] = None
    id: bool = True
    id_type: IdType = Field(default_factory=lambda: IdType(settings.default_id_type))
    timestamps: bool = True
    soft_delete: bool = False
    indexes: List[Union[str, IndexOption]] = Field(default_factory=list)
    unique: List[List[str]] = Field(default_factory=list)
    hidden: bool = False
    pivot_for: Optional[Tuple[str, str]] = None

    @field_validator("unique", mode="before")
    @classmethod
    def _normalize_unique(cls, value):
        # A flat list is a single constraint
        if value and all(isinstance(item, str) for item in value):
            return [list(value)]
        return value


class EntityDefinition(SchemaModel):
    name: str
    kind: Literal["object", "pivot", "enum"] = "object"
    properties: Dict[str, PropertyDefinition] = Field(default_factory=dict)
    options: EntityOptions = Field(default_factory=EntityOptions)
    values: List[str] = Field(default_factory=list)

    @field_validator("values", mode="before")
    @classmethod
    def _normalize_values(cls, value):
        if not value:
            return []
        return [item["value"] if isinstance(item, dict) else item for item in value]

    @property
    def is_table(self) -> bool:
        return self.kind != "enum"

    @property
    def id_type(self) -> IdType:
        return self.options.id_type

    @property
    def pivot_for(self) -> Optional[Tuple[str, str]]:
        return self.options.pivot_for


EntityCollection = Dict[str, EntityDefinition]


class SqlDescriptor(SchemaModel):
    sql_type: str
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    unsigned: bool = False
    nullable: Optional[bool] = None
    default: Any = None


class CompoundField(SchemaModel):
    suffix: str
    sql: Optional[SqlDescriptor] = None
    enum_ref: Optional[str] = None


class CompoundTypeDefinition(SchemaModel):
    """A custom type that expands one logical property into several columns."""
    name: str
    fields: List[CompoundField] = Field(default_factory=list, alias="expand")
