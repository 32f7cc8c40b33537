"""Display-name resolution for column comments."""
from typing import Dict, Optional, Union

from schemaforge.core.config import settings

LocalizedString = Union[str, Dict[str, str]]


def resolve_localized_string(
    value: Optional[LocalizedString],
    locale: Optional[str] = None,
    fallback_locale: Optional[str] = None,
) -> Optional[str]:
    """
    Resolve a plain or per-locale display name to a single string.

    Lookup order for locale maps: requested locale, fallback locale, the first
    non-empty entry in declaration order.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value or None

    locale = locale or settings.locale
    fallback_locale = fallback_locale or settings.fallback_locale
    for key in (locale, fallback_locale):
        resolved = value.get(key)
        if resolved:
            return resolved
    for resolved in value.values():
        if resolved:
            return resolved
    return None
