"""
Tests for the AuthorizationGate: health check bypass, blank header, missing scope, pass-through.
"""
import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from instance_service.authorization import AuthorizationContext, AuthorizationGate, check_scope
from instance_service.config import ScopeConfiguration
from instance_service.errors import ErrorKind

REQUIRED = "bim.instances.read"


def _gated_app(required: str = REQUIRED):
    """Small app with a spy endpoint behind the gate. Returns (app, calls)."""
    calls = []
    app = FastAPI()
    app.add_middleware(AuthorizationGate, scope_config=ScopeConfiguration(scope_value=required))

    @app.get("/ping")
    def ping():
        calls.append("/ping")
        return {"status": "ok"}

    @app.get("/protected")
    def protected():
        calls.append("/protected")
        return {"message": "through"}

    return app, calls


@pytest.fixture
def gated():
    app, calls = _gated_app()
    return TestClient(app), calls


# --- AuthorizationContext / check_scope ---


def test_context_splits_on_comma_without_trimming():
    ctx = AuthorizationContext.from_header("a, b,c")
    assert ctx.scope_set == frozenset({"a", " b", "c"})
    assert ctx.raw_scope_header == "a, b,c"


@pytest.mark.parametrize("raw", [None, "", "   ", "\t"])
def test_check_scope_blank_header_is_unauthorized(raw):
    assert check_scope(raw, REQUIRED) is ErrorKind.UNAUTHORIZED_REQUEST


@pytest.mark.parametrize(
    "raw",
    [
        "other.scope",
        "bim.instances.write,other",
        "bim.instances.read.extra",
        # entries are not trimmed
        "other, bim.instances.read",
        " bim.instances.read",
    ],
)
def test_check_scope_without_exact_entry_is_missing_scope(raw):
    assert check_scope(raw, REQUIRED) is ErrorKind.MISSING_SCOPE


@pytest.mark.parametrize(
    "raw",
    [
        "bim.instances.read",
        "bim.instances.read,other",
        "other,bim.instances.read",
        "a,bim.instances.read,b",
    ],
)
def test_check_scope_with_entry_passes(raw):
    assert check_scope(raw, REQUIRED) is None


# --- middleware ---


def test_ping_bypasses_gate_without_header(gated):
    client, calls = gated
    response = client.get("/ping")
    assert response.status_code == 200
    assert calls == ["/ping"]


def test_ping_bypasses_gate_with_wrong_scope(gated):
    client, calls = gated
    response = client.get("/ping", headers={"X-Authenticated-Scope": "nothing"})
    assert response.status_code == 200
    assert calls == ["/ping"]


def test_missing_header_returns_401_and_handler_not_called(gated):
    client, calls = gated
    response = client.get("/protected")
    assert response.status_code == 401
    assert response.json().get("error") == "unauthorized_request"
    assert calls == []


def test_empty_header_returns_401_and_handler_not_called(gated):
    client, calls = gated
    response = client.get("/protected", headers={"X-Authenticated-Scope": ""})
    assert response.status_code == 401
    assert calls == []


def test_wrong_scope_returns_403_and_handler_not_called(gated):
    client, calls = gated
    response = client.get("/protected", headers={"X-Authenticated-Scope": "a,b"})
    assert response.status_code == 403
    assert response.json().get("error") == "missing_scope"
    assert calls == []


@pytest.mark.parametrize("header", ["bim.instances.read", "x,bim.instances.read", "bim.instances.read,y"])
def test_required_scope_invokes_handler_once(gated, header):
    client, calls = gated
    response = client.get("/protected", headers={"X-Authenticated-Scope": header})
    assert response.status_code == 200
    assert response.json() == {"message": "through"}
    assert calls == ["/protected"]


def test_required_scope_comes_from_configuration():
    app, calls = _gated_app(required="custom.scope")
    client = TestClient(app)
    assert client.get("/protected", headers={"X-Authenticated-Scope": REQUIRED}).status_code == 403
    assert client.get("/protected", headers={"X-Authenticated-Scope": "custom.scope"}).status_code == 200
    assert calls == ["/protected"]


def test_gate_logs_warning_and_error(gated, caplog):
    client, _ = gated
    caplog.set_level(logging.DEBUG, logger="instance_service.authorization")
    client.get("/protected")
    client.get("/protected", headers={"X-Authenticated-Scope": "other"})
    levels = [r.levelno for r in caplog.records if r.name == "instance_service.authorization"]
    assert logging.DEBUG in levels
    assert logging.WARNING in levels
    assert logging.ERROR in levels
    assert all(getattr(r, "title", None) == "AuthorizationGate" for r in caplog.records if r.name == "instance_service.authorization")
