import logging
import sys

from schemaforge.core.config import settings


class ContextFormatter(logging.Formatter):
    """Custom formatter that handles optional schema and table fields."""
    def format(self, record):
        # Add default values for schema and table if not present
        if not hasattr(record, 'schema'):
            record.schema = '-'
        if not hasattr(record, 'table'):
            record.table = '-'
        return super().format(record)


def configure_logging(level: str | None = None) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ContextFormatter(
        "%(asctime)s %(levelname)s %(name)s [schema=%(schema)s table=%(table)s] - %(message)s"
    ))
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        handlers=[handler],
    )
