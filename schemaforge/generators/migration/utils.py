"""Naming utilities for migration generation."""
import re
from typing import Iterable

IRREGULAR_PLURALS = {
    "person": "people",
    "child": "children",
    "man": "men",
    "woman": "women",
    "mouse": "mice",
    "foot": "feet",
    "tooth": "teeth",
    "goose": "geese",
    "ox": "oxen",
}
IRREGULAR_SINGULARS = {plural: singular for singular, plural in IRREGULAR_PLURALS.items()}

UNCOUNTABLE = {"equipment", "information", "news", "species", "series", "data", "metadata", "media", "staff"}

# -ie stems, where "ies" is the stem plus "s": movies -> movie
IE_STEMS = {
    "movie", "cookie", "pie", "tie", "lie", "die", "zombie", "rookie", "selfie",
    "hippie", "calorie", "genie", "prairie", "smoothie", "sortie",
}

# doubled consonant before "es": quizzes -> quiz
DOUBLED_PLURALS = {"quizzes": "quiz", "whizzes": "whiz"}


def to_snake_case(name: str) -> str:
    """Convert PascalCase or camelCase to snake_case."""
    s1 = re.sub('(.)([A-Z][a-z]+)', r'\1_\2', name)
    s2 = re.sub('([a-z0-9])([A-Z])', r'\1_\2', s1)
    return s2.lower()


def to_pascal_case(name: str) -> str:
    """Convert snake_case or kebab-case to PascalCase."""
    return "".join(part[:1].upper() + part[1:] for part in re.split(r'[-_]', name) if part)


def to_camel_case(name: str) -> str:
    """Convert snake_case or kebab-case to camelCase."""
    pascal = to_pascal_case(name)
    return pascal[:1].lower() + pascal[1:]


def to_column_name(property_name: str) -> str:
    """Convert a property name to its snake_case column name."""
    return to_snake_case(property_name)


def _split_last_word(name: str) -> tuple[str, str]:
    head, sep, last = name.rpartition("_")
    return head + sep, last


def _pluralize_word(word: str) -> str:
    lower = word.lower()
    if lower in UNCOUNTABLE:
        return word
    if lower in IRREGULAR_PLURALS:
        return IRREGULAR_PLURALS[lower]
    if word.endswith("y") and len(word) > 1 and word[-2] not in "aeiou":
        return word[:-1] + "ies"
    if word.endswith("z") and not word.endswith("zz"):
        return word + "zes"
    if word.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    return word + "s"


def _singularize_word(word: str) -> str:
    lower = word.lower()
    if lower in UNCOUNTABLE:
        return word
    if lower in IRREGULAR_SINGULARS:
        return IRREGULAR_SINGULARS[lower]
    if lower in IRREGULAR_PLURALS:
        return word
    if lower in DOUBLED_PLURALS:
        return DOUBLED_PLURALS[lower]
    if lower[:-1] in IE_STEMS and lower.endswith("s"):
        return word[:-1]
    if word.endswith("ies") and len(word) > 3:
        return word[:-3] + "y"
    if word.endswith("zzes"):
        return word[:-2]
    # branches -> branch, batches -> batch, never "branche"
    if word.endswith(("ches", "shes", "xes", "sses")):
        return word[:-2]
    if word.endswith("uses") and not word.endswith("ouses"):
        return word[:-2]
    if word.endswith("ss") or word.endswith("us"):
        return word
    if word.endswith("s") and len(word) > 1:
        return word[:-1]
    return word


def pluralize(name: str) -> str:
    """Pluralize the last word of a snake_case name."""
    head, last = _split_last_word(name)
    return head + _pluralize_word(last)


def singularize(name: str) -> str:
    """Singularize the last word of a snake_case name."""
    head, last = _split_last_word(name)
    return head + _singularize_word(last)


def to_table_name(schema_name: str) -> str:
    """Convert schema name to snake_case plural table name."""
    return pluralize(to_snake_case(schema_name))


def _name_part(value: str) -> str:
    return re.sub(r'[^a-z0-9_]', '_', value.lower())


def index_name(table_name: str, columns: Iterable[str], unique: bool) -> str:
    """Deterministic index name: {table}_{columns}_{unique|index}."""
    suffix = "unique" if unique else "index"
    return _name_part(f"{table_name}_{'_'.join(columns)}_{suffix}")


def foreign_key_name(table_name: str, column: str) -> str:
    """Deterministic foreign key constraint name: {table}_{column}_foreign."""
    return _name_part(f"{table_name}_{column}_foreign")


def primary_key_name(table_name: str) -> str:
    return _name_part(f"{table_name}_pkey")


def migration_file_name(table_name: str, verb: str, timestamp: str) -> str:
    """`{timestamp}_{verb}_{table}_table.py`, e.g. 2024_01_01_000000_create_users_table.py."""
    return f"{timestamp}_{verb}_{table_name}_table.py"
