# config.py - immutable settings resolved once from the environment
import os
import re
from typing import Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.engine import URL, make_url

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_$#@]*$")

DEFAULT_SCHEMA = "DB2INST1"
DEFAULT_TABLE = "CREDITAPPLICATIONS"


class Settings(BaseModel):
    """Startup configuration. Frozen; pass it to the components that need it."""

    model_config = ConfigDict(frozen=True)

    database_url: str
    database_name: Optional[str] = None
    db_schema: str = DEFAULT_SCHEMA
    db_table: str = DEFAULT_TABLE
    port: int = 4000
    environment: str = "production"
    log_level: str = "INFO"
    cors_origins: Tuple[str, ...] = ("*",)

    @field_validator("db_schema", "db_table")
    @classmethod
    def _check_identifier(cls, value: str) -> str:
        # schema and table are spliced into statement text, so they must be plain identifiers
        if not IDENTIFIER_RE.match(value):
            raise ValueError(f"Invalid SQL identifier: {value!r}")
        return value

    @property
    def qualified_table(self) -> str:
        return f"{self.db_schema}.{self.db_table}"

    @property
    def backend(self) -> str:
        return make_url(self.database_url).get_backend_name()

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def safe_url(self) -> str:
        return make_url(self.database_url).render_as_string(hide_password=True)

    @property
    def password(self) -> Optional[str]:
        return make_url(self.database_url).password


def _db2_url(env) -> str:
    host = env.get("DB2_HOST")
    database = env.get("DB2_DATABASE")
    if not host or not database:
        raise RuntimeError("Set DATABASE_URL or DB2_HOST/DB2_DATABASE in .env")

    query = {}
    if env.get("DB2_SSL", "true").lower() in ("1", "true", "yes", "on"):
        query["Security"] = "SSL"
    query["ConnectTimeout"] = env.get("DB2_CONNECT_TIMEOUT", "30")

    port = env.get("DB2_PORT")
    url = URL.create(
        "db2+ibm_db",
        username=env.get("DB2_USERNAME"),
        password=env.get("DB2_PASSWORD"),
        host=host,
        port=int(port) if port else None,
        database=database,
        query=query,
    )
    return url.render_as_string(hide_password=False)


def load_settings(environ=None) -> Settings:
    """Build Settings from ``environ`` (defaults to os.environ after loading .env)."""
    if environ is None:
        load_dotenv()
        environ = os.environ

    database_url = environ.get("DATABASE_URL") or _db2_url(environ)
    database_name = environ.get("DB2_DATABASE") or make_url(database_url).database
    origins = environ.get("CORS_ORIGINS", "*")

    return Settings(
        database_url=database_url,
        database_name=database_name,
        db_schema=environ.get("DB2_SCHEMA") or DEFAULT_SCHEMA,
        db_table=environ.get("DB2_TABLE") or DEFAULT_TABLE,
        port=int(environ.get("PORT", "4000")),
        environment=environ.get("ENVIRONMENT", "production"),
        log_level=environ.get("LOG_LEVEL", "INFO").upper(),
        cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
    )
