# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

import base64
import json
import time
import uuid
from typing import Any
from urllib.parse import parse_qsl

import httpx
import pytest
from authlib.jose import JsonWebKey, jwt
from pydantic import SecretStr

from coreason_keycloak.config import KeycloakConfig

BASE_URL = "https://auth.coreason.ai"
REALM = "coreason"
CLIENT_ID = "backend-service"
CLIENT_SECRET = "s3cret"
KID = "realm-key-1"


def b64_segment(value: dict[str, Any]) -> str:
    return base64.urlsafe_b64encode(json.dumps(value).encode()).rstrip(b"=").decode()


def unsigned_token(header: dict[str, Any], payload: dict[str, Any]) -> str:
    """Builds a compact JWS with a dummy signature, for header-level checks."""
    return f"{b64_segment(header)}.{b64_segment(payload)}.c2lnbmF0dXJl"


def mint_token(key: Any, claims: dict[str, Any], headers: dict[str, Any] | None = None) -> str:
    if headers is None:
        headers = {"alg": "RS256", "kid": key.as_dict()["kid"]}
    return jwt.encode(headers, claims, key).decode("utf-8")  # type: ignore[no-any-return]


def public_jwk(key: Any) -> dict[str, Any]:
    return {**key.as_dict(is_private=False), "use": "sig", "alg": "RS256"}


def user_claims(**overrides: Any) -> dict[str, Any]:
    now = int(time.time())
    claims = {
        "sub": "f4a1e3b2-0000-4000-8000-000000000001",
        "iat": now,
        "exp": now + 300,
        "azp": CLIENT_ID,
        "given_name": "Alice",
        "family_name": "Liddell",
        "email": "alice@coreason.ai",
    }
    claims.update(overrides)
    return claims


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keeps KEYCLOAK_* variables of the host from leaking into configuration tests."""
    for name in (
        "KEYCLOAK_CLIENT_ID",
        "KEYCLOAK_CLIENT_SECRET",
        "KEYCLOAK_REALM",
        "KEYCLOAK_URL",
        "KEYCLOAK_UNSAFE_LOCAL_DEV",
        "KEYCLOAK_REFRESH_KEYS_ON_MISS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(scope="session")
def signing_key() -> Any:
    return JsonWebKey.generate_key("RSA", 2048, options={"kid": KID}, is_private=True)


@pytest.fixture(scope="session")
def rotated_key() -> Any:
    return JsonWebKey.generate_key("RSA", 2048, options={"kid": "realm-key-2"}, is_private=True)


class FakeRealm:
    """
    In-process stand-in for a realm's token, introspection, certs and admin endpoints.
    Served through httpx.MockTransport.
    """

    def __init__(self, signing_key: Any) -> None:
        self.signing_key = signing_key
        self.published_keys: list[dict[str, Any]] = [public_jwk(signing_key)]
        self.clients = {CLIENT_ID: CLIENT_SECRET, "reporting-service": "r3port"}
        self.users = {
            "alice": {
                "password": "wonderland",
                "given_name": "Alice",
                "family_name": "Liddell",
                "email": "alice@coreason.ai",
            }
        }
        self.requests: list[httpx.Request] = []
        self.active_tokens: set[str] = set()
        self.refresh_tokens: dict[str, str] = {}
        self.created_users: list[dict[str, Any]] = []
        self.status_overrides: dict[str, httpx.Response] = {}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        for suffix, response in self.status_overrides.items():
            if path.endswith(suffix):
                return response

        if path.endswith("/protocol/openid-connect/token/introspect"):
            return self._introspect(request)
        if path.endswith("/protocol/openid-connect/token"):
            return self._token(request)
        if path.endswith("/protocol/openid-connect/certs"):
            return httpx.Response(200, json={"keys": self.published_keys})
        if path == f"/admin/realms/{REALM}/users" and request.method == "POST":
            return self._create_user(request)
        return httpx.Response(404, text="nothing to see here")

    def requests_to(self, suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]

    def _form(self, request: httpx.Request) -> dict[str, str]:
        return dict(parse_qsl(request.content.decode()))

    def _client_ok(self, form: dict[str, str]) -> bool:
        client_id = form.get("client_id", "")
        return client_id in self.clients and self.clients[client_id] == form.get("client_secret")

    def _issue(self, client_id: str, profile: dict[str, str], with_refresh: bool) -> httpx.Response:
        claims = user_claims(
            sub=str(uuid.uuid4()),
            azp=client_id,
            given_name=profile["given_name"],
            family_name=profile["family_name"],
            email=profile["email"],
        )
        access_token = mint_token(self.signing_key, claims)
        self.active_tokens.add(access_token)
        body: dict[str, Any] = {
            "access_token": access_token,
            "expires_in": 300,
            "token_type": "Bearer",
            "not-before-policy": 0,
            "scope": "profile email",
        }
        if with_refresh:
            refresh_token = f"refresh-{uuid.uuid4()}"
            self.refresh_tokens[refresh_token] = profile["email"]
            body.update(refresh_token=refresh_token, refresh_expires_in=1800)
        return httpx.Response(200, json=body)

    def _token(self, request: httpx.Request) -> httpx.Response:
        form = self._form(request)
        if not self._client_ok(form):
            return httpx.Response(401, json={"error": "unauthorized_client"})

        grant_type = form.get("grant_type")
        if grant_type == "password":
            user = self.users.get(form.get("username", ""))
            if user is None or user["password"] != form.get("password"):
                return httpx.Response(
                    401, json={"error": "invalid_grant", "error_description": "Invalid user credentials"}
                )
            return self._issue(form["client_id"], user, with_refresh=True)

        if grant_type == "client_credentials":
            profile = {
                "given_name": "service",
                "family_name": "account",
                "email": f"{form['client_id']}@service.coreason.ai",
            }
            return self._issue(form["client_id"], profile, with_refresh=False)

        if grant_type == "refresh_token":
            email = self.refresh_tokens.pop(form.get("refresh_token", ""), None)
            user = next((u for u in self.users.values() if u["email"] == email), None)
            if user is None:
                return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid refresh token"})
            return self._issue(form["client_id"], user, with_refresh=True)

        return httpx.Response(400, json={"error": "unsupported_grant_type"})

    def _introspect(self, request: httpx.Request) -> httpx.Response:
        form = self._form(request)
        if not self._client_ok(form):
            return httpx.Response(401, json={"error": "invalid_client"})
        if form.get("token") in self.active_tokens:
            return httpx.Response(200, json={"active": True, "client_id": CLIENT_ID, "token_type": "Bearer"})
        return httpx.Response(200, json={"active": False})

    def _create_user(self, request: httpx.Request) -> httpx.Response:
        auth = request.headers.get("Authorization", "")
        if not auth.startswith("Bearer ") or auth.removeprefix("Bearer ") not in self.active_tokens:
            return httpx.Response(401, json={"error": "HTTP 401 Unauthorized"})
        user = json.loads(request.content)
        if any(u["username"] == user["username"] for u in self.created_users):
            return httpx.Response(409, json={"errorMessage": "User exists with same username"})
        self.created_users.append(user)
        return httpx.Response(201, headers={"Location": f"{BASE_URL}/admin/realms/{REALM}/users/{uuid.uuid4()}"})


@pytest.fixture
def realm(signing_key: Any) -> FakeRealm:
    return FakeRealm(signing_key)


@pytest.fixture
def http_client(realm: FakeRealm) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=realm.transport)


@pytest.fixture
def config() -> KeycloakConfig:
    return KeycloakConfig(
        client_id=CLIENT_ID,
        client_secret=SecretStr(CLIENT_SECRET),
        realm=REALM,
        url=BASE_URL,
        pii_salt=SecretStr("test-salt"),
    )
