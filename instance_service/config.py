"""
Instance service configuration. All values come from the environment.
The required scope is a public identifier, not a secret; the database password is never logged.
"""
import os
from dataclasses import dataclass

from sqlalchemy.engine import URL, make_url

# Scope the gateway must assert in X-Authenticated-Scope for the lookup endpoint
SCOPE_VALUE = os.environ.get("SCOPE_VALUE", "bim.instances.read")

# Health check path; never gated (container healthchecks carry no identity headers)
HEALTHCHECK_PATH = os.environ.get("HEALTHCHECK_PATH", "/ping")

# Header populated by the upstream gateway after it authenticated the caller
SCOPE_HEADER = "X-Authenticated-Scope"

# Table holding one JSON document per (model, id)
INSTANCES_TABLE = os.environ.get("INSTANCES_TABLE", "bim_models.instances")

# Full SQLAlchemy URL; when unset the URL is assembled from the PG_* variables
DATABASE_URL = os.environ.get("DATABASE_URL", "").strip() or None

PG_HOST = os.environ.get("PG_HOST", "localhost")
PG_PORT = int(os.environ.get("PG_PORT", "5432"))
PG_USER = os.environ.get("PG_USER", "postgres")
PG_PASSWORD = os.environ.get("PG_PASSWORD", "")
PG_DATABASE = os.environ.get("PG_DATABASE", "postgres")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
# "plain" for humans, "json" for log shippers
LOG_FORMAT = os.environ.get("LOG_FORMAT", "plain")

HTTP_HOST = os.environ.get("HTTP_HOST", "0.0.0.0")
HTTP_PORT = int(os.environ.get("HTTP_PORT", "8000"))


@dataclass(frozen=True)
class ScopeConfiguration:
    """Read-only authorization settings handed to the gate at construction time."""

    scope_value: str
    healthcheck_path: str = "/ping"

    @classmethod
    def from_env(cls) -> "ScopeConfiguration":
        return cls(scope_value=SCOPE_VALUE, healthcheck_path=HEALTHCHECK_PATH)


def build_database_url() -> URL:
    """
    Connection URL for the instance store.
    DATABASE_URL wins; otherwise a postgresql URL is assembled so that special
    characters in the password are escaped by SQLAlchemy, not by hand.
    """
    if DATABASE_URL:
        return make_url(DATABASE_URL)
    return URL.create(
        drivername="postgresql",
        username=PG_USER,
        password=PG_PASSWORD or None,
        host=PG_HOST,
        port=PG_PORT,
        database=PG_DATABASE,
    )
