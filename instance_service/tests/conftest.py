"""
Pytest configuration for instance_service. Use in-memory SQLite so tests don't need PostgreSQL.
"""
import os

# In-memory SQLite; database.py uses StaticPool so all connections share the same DB
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
# SQLite has no bim_models schema
os.environ["INSTANCES_TABLE"] = "instances"
os.environ["SCOPE_VALUE"] = "bim.instances.read"
os.environ.pop("HEALTHCHECK_PATH", None)
