"""Tests for settings, logging and display-name resolution."""
import logging

from schemaforge.core.config import Settings
from schemaforge.core.errors import SchemaDefinitionError, SchemaForgeError, TimestampFormatError
from schemaforge.core.locale import resolve_localized_string
from schemaforge.core.logging import ContextFormatter, configure_logging


def test_settings_defaults():
    config = Settings(_env_file=None)
    assert config.default_id_type == "BigInt"
    assert config.fk_on_delete == "restrict"
    assert config.pivot_on_delete == "cascade"
    assert config.enum_ref_length == 50
    assert config.migration_timestamp is None


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("SCHEMAFORGE_ENUM_REF_LENGTH", "80")
    monkeypatch.setenv("SCHEMAFORGE_MIGRATION_TIMESTAMP", "2030_01_01_000000")
    config = Settings(_env_file=None)
    assert config.enum_ref_length == 80
    assert config.migration_timestamp == "2030_01_01_000000"


def test_context_formatter_fills_missing_fields():
    formatter = ContextFormatter("[schema=%(schema)s table=%(table)s] %(message)s")
    record = logging.LogRecord("schemaforge", logging.INFO, __file__, 1, "built", None, None)
    assert formatter.format(record) == "[schema=- table=-] built"

    record = logging.LogRecord("schemaforge", logging.INFO, __file__, 1, "built", None, None)
    record.schema = "User"
    record.table = "users"
    assert formatter.format(record) == "[schema=User table=users] built"


def test_configure_logging_installs_context_formatter(monkeypatch):
    captured = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: captured.update(kwargs))
    configure_logging("debug")

    assert captured["level"] == "DEBUG"
    assert isinstance(captured["handlers"][0].formatter, ContextFormatter)


class TestLocalizedStrings:
    """Test display-name resolution."""

    def test_plain_string(self):
        assert resolve_localized_string("Name") == "Name"
        assert resolve_localized_string("") is None
        assert resolve_localized_string(None) is None

    def test_requested_locale_then_fallback(self):
        names = {"ja": "名前", "en": "Name"}
        assert resolve_localized_string(names, "ja") == "名前"
        assert resolve_localized_string(names, "fr", "en") == "Name"

    def test_first_non_empty_entry_is_last_resort(self):
        assert resolve_localized_string({"vi": "", "ja": "名前"}, "fr", "de") == "名前"
        assert resolve_localized_string({"vi": ""}, "fr", "de") is None


def test_error_hierarchy():
    error = SchemaDefinitionError("property definition has no type", "User.email")
    assert isinstance(error, SchemaForgeError)
    assert str(error) == "User.email: property definition has no type"
    assert str(SchemaDefinitionError("bad document")) == "bad document"
    assert issubclass(TimestampFormatError, ValueError)
