"""Tests for static-token authentication on the HTTP transport."""

import pytest
from conftest import make_protocol, post_chunked
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from pylon_mcp.transport.auth import AuthConfig, AuthenticatedHttpTransport

TOKEN = "s3cret-token"
PING = b'{"jsonrpc":"2.0","id":7,"method":"ping"}'


def make_client(**auth_kwargs) -> TestClient:
    async def health(request):
        return JSONResponse({"status": "healthy"})

    async def status(request):
        return JSONResponse({"status": "ok"})

    host = Starlette(routes=[Route("/health", health), Route("/status", status)])
    auth = AuthConfig(**auth_kwargs)
    return TestClient(AuthenticatedHttpTransport(make_protocol(), app=host, auth=auth))


@pytest.fixture
def client():
    with make_client(token=TOKEN, exempt_paths=("/health",)) as test_client:
        yield test_client


class TestAuthConfig:
    def test_disabled_without_token(self):
        assert AuthConfig().enabled is False
        assert AuthConfig(token="").enabled is False
        assert AuthConfig().check(None) is True
        assert AuthConfig().check("anything") is True

    def test_extract_token(self):
        assert AuthConfig.extract_token("Bearer abc") == "abc"
        assert AuthConfig.extract_token("bEaReR   abc ") == "abc"
        assert AuthConfig.extract_token("abc") == "abc"
        assert AuthConfig.extract_token("Bearer ") is None
        assert AuthConfig.extract_token(None) is None

    def test_exempt_is_prefix_match(self):
        config = AuthConfig(token=TOKEN, exempt_paths=("/health", "/public/"))
        assert config.is_exempt("/health")
        assert config.is_exempt("/health/deep")
        assert config.is_exempt("/public/file")
        assert not config.is_exempt("/mcp/messages")

    def test_config_is_frozen(self):
        config = AuthConfig(token=TOKEN)
        with pytest.raises(ValidationError):
            config.token = "other"


class TestAuthenticatedTransport:
    def test_exempt_path_without_header(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.parametrize("value", [f"Bearer {TOKEN}", f"bearer {TOKEN}", f"BEARER {TOKEN}", TOKEN])
    def test_valid_token_forms(self, client, value):
        response = client.post("/mcp/messages", content=PING, headers={"Authorization": value})
        assert response.status_code == 200
        assert response.json()["result"] == {}

    def test_missing_token(self, client):
        response = client.post("/mcp/messages", content=PING)
        assert response.status_code == 401
        body = response.json()
        assert body["id"] == 7
        assert body["error"]["code"] == -32000
        assert "Unauthorized" in body["error"]["message"]

    def test_wrong_token(self, client):
        response = client.post("/mcp/messages", content=PING, headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert response.json()["error"]["code"] == -32000

    def test_unparsable_body_gets_null_id(self, client):
        response = client.post("/mcp/messages", content=b"garbage")
        assert response.status_code == 401
        assert response.json()["id"] is None

    @pytest.mark.asyncio
    async def test_rejection_reads_at_most_the_body_limit(self):
        transport = AuthenticatedHttpTransport(make_protocol(), auth=AuthConfig(token=TOKEN), max_body_bytes=1024)
        status, body, pulled = await post_chunked(transport, "/mcp/messages")
        assert status == 401
        assert body["id"] is None
        assert pulled == 1

    @pytest.mark.asyncio
    async def test_rejection_skips_body_over_declared_limit(self):
        transport = AuthenticatedHttpTransport(make_protocol(), auth=AuthConfig(token=TOKEN), max_body_bytes=1024)
        status, body, pulled = await post_chunked(transport, "/mcp/messages", headers=[("Content-Length", "13107200")])
        assert status == 401
        assert body["error"]["code"] == -32000
        assert pulled == 0

    def test_stream_requires_token(self, client):
        response = client.get("/mcp/sse")
        assert response.status_code == 401
        assert response.json()["id"] is None

    def test_header_name_is_case_insensitive(self, client):
        response = client.post("/mcp/messages", content=PING, headers={"AUTHORIZATION": f"Bearer {TOKEN}"})
        assert response.status_code == 200

    def test_host_paths_need_token_unless_exempt(self, client):
        assert client.get("/status").status_code == 401
        response = client.get("/status", headers={"Authorization": f"Bearer {TOKEN}"})
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_custom_header(self):
        with make_client(token=TOKEN, header_name="X-Api-Key") as custom:
            ok = custom.post("/mcp/messages", content=PING, headers={"x-api-key": TOKEN})
            wrong_header = custom.post("/mcp/messages", content=PING, headers={"Authorization": f"Bearer {TOKEN}"})
        assert ok.status_code == 200
        assert wrong_header.status_code == 401

    def test_no_token_configured_lets_everything_through(self):
        with make_client() as open_client:
            response = open_client.post("/mcp/messages", content=PING)
        assert response.status_code == 200

    def test_unknown_endpoint_still_requires_token(self, client):
        assert client.get("/mcp/nowhere").status_code == 401
        response = client.get("/mcp/nowhere", headers={"Authorization": TOKEN})
        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Endpoint not found"
