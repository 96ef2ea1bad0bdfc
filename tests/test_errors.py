"""Tests for the error taxonomy and its HTTP mapping."""

import uuid
from collections.abc import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from admarket.core.errors import (
    AuthorizationError,
    ChannelNotListedError,
    InternalError,
    InvalidTransitionError,
    NotFoundError,
    PriceMismatchError,
    StateConflictError,
    ValidationError,
    error_payload,
    install_error_handlers,
)
from admarket.services.deal_state_machine import DealStatus

DEAL_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")

ERRORS = {
    "forbidden": AuthorizationError("not a participant in this deal"),
    "missing": NotFoundError("deal", DEAL_ID),
    "invalid": ValidationError({"scheduled_at": "must be in the future"}),
    "transition": InvalidTransitionError(DealStatus.APPROVED, DealStatus.CANCELLED),
    "price": PriceMismatchError(1, 5_000_000_000),
    "unlisted": ChannelNotListedError(-1001234),
    "internal": InternalError("approve deal", RuntimeError("connection reset")),
}


def _make_app() -> FastAPI:
    app = FastAPI()
    install_error_handlers(app)

    @app.get("/raise/{name}")
    async def raise_error(name: str):
        raise ERRORS[name]

    return app


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=_make_app())
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest.mark.parametrize(
    "name, status_code, code",
    [
        ("forbidden", 403, "forbidden"),
        ("missing", 404, "not_found"),
        ("invalid", 400, "validation_error"),
        ("transition", 409, "invalid_transition"),
        ("price", 409, "price_mismatch"),
        ("unlisted", 409, "channel_not_listed"),
        ("internal", 500, "internal_error"),
    ],
)
@pytest.mark.asyncio
async def test_error_status_codes(client, name, status_code, code):
    resp = await client.get(f"/raise/{name}")
    assert resp.status_code == status_code
    assert resp.json()["error"] == code


@pytest.mark.asyncio
async def test_validation_details_are_returned(client):
    resp = await client.get("/raise/invalid")
    assert resp.json() == {
        "error": "validation_error",
        "message": "validation failed",
        "details": {"scheduled_at": "must be in the future"},
    }


@pytest.mark.asyncio
async def test_internal_error_hides_cause(client):
    resp = await client.get("/raise/internal")
    body = resp.json()
    assert body == {"error": "internal_error", "message": "internal error"}
    assert "connection reset" not in resp.text


def test_transition_error_names_both_statuses():
    exc = InvalidTransitionError(DealStatus.POSTED, DealStatus.CANCELLED)
    assert exc.details == {"current_status": "posted", "target_status": "cancelled"}
    assert "posted -> cancelled" in str(exc)
    assert isinstance(exc, StateConflictError)


def test_not_found_message():
    assert str(NotFoundError("deal", DEAL_ID)) == f"deal {DEAL_ID} not found"
    assert str(NotFoundError("ad format")) == "ad format not found"


def test_payload_omits_empty_details():
    assert error_payload(AuthorizationError()) == {
        "error": "forbidden",
        "message": "forbidden",
    }
