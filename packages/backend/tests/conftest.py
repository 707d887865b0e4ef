"""Test fixtures — in-memory store, fixed signing key, fake Google.

No database and no network:

1. get_user_store is overridden with an InMemoryUserStore per test.
2. get_token_issuer is overridden with a TokenIssuer on a fixed test key.
3. get_identity_verifier is overridden with the real Google verifier, but
   its HTTP client talks to an httpx.MockTransport that serves the JWKS
   of an RSA key generated for the test session. ID tokens signed with
   that key therefore pass real signature/audience/issuer checks.
"""

import asyncio
import json
import os
import time
import uuid

# Required settings must exist before flowapi.config is imported
os.environ.setdefault("FLOW_GOOGLE_CLIENT_ID", "flow-test.apps.googleusercontent.com")
os.environ.setdefault("FLOW_JWT_SECRET", "test-secret-do-not-use-in-production")

import httpx
import jwt
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from jwt.algorithms import RSAAlgorithm

from flowapi.auth.dependencies import get_identity_verifier, get_token_issuer
from flowapi.auth.identity import GoogleTokenVerifier, IdentityProvider, IdentityVerifier
from flowapi.auth.jwt import TokenIssuer
from flowapi.config import settings
from flowapi.db.engine import get_user_store
from flowapi.db.memory import InMemoryUserStore
from flowapi.db.models import ROLE_CUSTOMER, User
from flowapi.main import app

CLIENT_ID = settings.google_client_id
CERTS_URL = "https://idp.test/oauth2/v3/certs"
KID = "test-key-1"
SIGNING_SECRET = "fixed-test-signing-key-0123456789abcdef"


def _generate_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_key():
    return _generate_key()


@pytest.fixture(scope="session")
def other_rsa_key():
    """A key Google never published. Tokens signed with it must fail."""
    return _generate_key()


@pytest.fixture()
def jwks(rsa_key):
    public = json.loads(RSAAlgorithm.to_jwk(rsa_key.public_key()))
    public.update({"kid": KID, "alg": "RS256", "use": "sig"})
    return {"keys": [public]}


@pytest.fixture()
def jwks_server(jwks):
    """MockTransport serving the JWKS. Counts fetches; can be slowed or switched off."""

    class Server:
        fetches = 0
        available = True
        delay = 0.0

        async def handler(self, request: httpx.Request) -> httpx.Response:
            assert str(request.url) == CERTS_URL
            self.fetches += 1
            if self.delay:
                await asyncio.sleep(self.delay)
            if not self.available:
                return httpx.Response(503, text="unavailable")
            return httpx.Response(200, json=jwks)

    return Server()


@pytest.fixture()
def make_google_token(rsa_key):
    """Build a Google-style ID token. Override claims with keyword args."""

    def _make(email="ana@example.com", key=None, kid=KID, **overrides):
        now = int(time.time())
        claims = {
            "iss": "https://accounts.google.com",
            "aud": CLIENT_ID,
            "sub": uuid.uuid4().hex,
            "email": email,
            "email_verified": True,
            "iat": now,
            "exp": now + 3600,
        }
        claims.update(overrides)
        claims = {k: v for k, v in claims.items() if v is not None}
        return jwt.encode(
            claims, key or rsa_key, algorithm="RS256", headers={"kid": kid}
        )

    return _make


@pytest_asyncio.fixture()
async def identity_verifier(jwks_server):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(jwks_server.handler))
    google = GoogleTokenVerifier(
        client_id=CLIENT_ID,
        http_client=http_client,
        certs_url=CERTS_URL,
        timeout=2.0,
    )
    yield IdentityVerifier({IdentityProvider.GOOGLE: google})
    await http_client.aclose()


@pytest.fixture()
def signing_secret():
    return SIGNING_SECRET


@pytest.fixture()
def token_issuer(signing_secret):
    return TokenIssuer(secret=signing_secret)


@pytest.fixture()
def store():
    return InMemoryUserStore()


@pytest.fixture()
def new_user():
    """Factory for unsaved User rows."""

    def _new(email="ana@example.com", dni="12345678", **fields):
        values = {
            "name": "Ana",
            "lastname_main": "Perez",
            "lastname_secondary": "Rojas",
            "address": "Av. Larco 123, Lima",
        }
        values.update(fields)
        return User(email=email, role=ROLE_CUSTOMER, dni=dni, **values)

    return _new


@pytest_asyncio.fixture()
async def client(store, identity_verifier, token_issuer):
    """HTTP client with storage, IdP and signing key swapped for test doubles."""
    app.dependency_overrides[get_user_store] = lambda: store
    app.dependency_overrides[get_identity_verifier] = lambda: identity_verifier
    app.dependency_overrides[get_token_issuer] = lambda: token_issuer

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
