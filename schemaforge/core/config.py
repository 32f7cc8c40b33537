from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="SCHEMAFORGE_", extra="ignore")

    app_name: str = "schemaforge"
    log_level: str = "INFO"

    default_id_type: str = "BigInt"
    locale: str = "en"
    fallback_locale: str = "en"

    fk_on_delete: str = "restrict"
    fk_on_update: str = "cascade"
    pivot_on_delete: str = "cascade"
    pivot_on_update: str = "cascade"

    enum_ref_length: int = 50

    # Fixed base timestamp (YYYY_MM_DD_HHMMSS) for reproducible output
    migration_timestamp: str | None = None
    migrations_dir: str = "migrations"
    sql_dialect: str = "postgresql"

settings = Settings()
