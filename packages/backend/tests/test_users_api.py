"""Users API tests — direct registration, lookup, deletion."""

import pytest

NEW_USER = {
    "email": "Ana@Example.com",
    "dni": "12345678",
    "name": "Ana",
    "lastname_main": "Perez",
    "lastname_secondary": "Rojas",
    "address": "Av. Larco 123, Lima",
}


@pytest.mark.asyncio
async def test_create_user(client, store, token_issuer):
    r = await client.post("/users", json=NEW_USER)
    assert r.status_code == 201
    data = r.json()
    assert data["user_info"]["email"] == "ana@example.com"
    assert data["user_info"]["role"] == "customer"
    assert data["user_info"]["created_at"] is not None

    claims = token_issuer.verify_token(data["tokens"]["access_token"])
    assert claims["sub"] == str(data["user_info"]["id"])
    assert len(store) == 1


@pytest.mark.asyncio
async def test_create_user_duplicate_email(client):
    await client.post("/users", json=NEW_USER)
    r = await client.post("/users", json={**NEW_USER, "dni": "87654321"})
    assert r.status_code == 409
    assert r.json()["message"] == "A user already exists with this email"


@pytest.mark.asyncio
async def test_create_user_duplicate_dni(client):
    await client.post("/users", json=NEW_USER)
    r = await client.post("/users", json={**NEW_USER, "email": "bob@example.com"})
    assert r.status_code == 409
    assert r.json()["message"] == "A user already exists with this dni"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"email": ""}, "missing required 'email' field"),
        ({"email": "not-an-email"}, "invalid email"),
        ({"address": ""}, "missing required 'address' field"),
    ],
)
async def test_create_user_validation(client, store, overrides, message):
    r = await client.post("/users", json={**NEW_USER, **overrides})
    assert r.status_code == 400
    assert r.json()["message"] == message
    assert store.calls == []


@pytest.mark.asyncio
async def test_create_user_needs_no_token(client, jwks_server):
    r = await client.post("/users", json=NEW_USER)
    assert r.status_code == 201
    assert jwks_server.fetches == 0


@pytest.mark.asyncio
async def test_get_user(client, store, new_user):
    saved = await store.create_user(new_user())
    r = await client.get("/users/ana@example.com")
    assert r.status_code == 200
    data = r.json()
    assert data["id"] == saved.id
    assert data["lastname_secondary"] == "Rojas"
    assert "tokens" not in data


@pytest.mark.asyncio
async def test_get_user_normalizes_email(client, store, new_user):
    await store.create_user(new_user())
    r = await client.get("/users/ANA@example.com")
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_get_user_not_found(client):
    r = await client.get("/users/nobody@example.com")
    assert r.status_code == 404
    assert r.json() == {"message": "User not found", "code": "NOT_FOUND"}


@pytest.mark.asyncio
async def test_get_user_invalid_email(client, store):
    r = await client.get("/users/not-an-email")
    assert r.status_code == 400
    assert r.json()["message"] == "invalid email"
    assert store.calls == []


@pytest.mark.asyncio
async def test_delete_user(client, store, new_user):
    saved = await store.create_user(new_user())
    r = await client.delete(f"/users/{saved.id}")
    assert r.status_code == 204
    assert r.content == b""
    assert await store.get_user("ana@example.com") is None


@pytest.mark.asyncio
async def test_delete_frees_email_and_dni(client, store, new_user):
    saved = await store.create_user(new_user())
    await client.delete(f"/users/{saved.id}")
    r = await client.post("/users", json=NEW_USER)
    assert r.status_code == 201


@pytest.mark.asyncio
async def test_delete_unknown_user(client):
    r = await client.delete("/users/999")
    assert r.status_code == 404
