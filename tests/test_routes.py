"""
End-to-end tests for the /api routes over an in-memory database.
"""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
import pytest_asyncio

from auth.dependencies import db_session
from auth.jwt import create_token
from config.platforms import get_platform_catalog
from config.settings import config
from connectors.encryption import get_cipher
from connectors.registry import ConnectorRegistry, get_connector_registry
from main import create_app


class _TokenEndpoint:
    """Stands in for every platform's token endpoint."""

    def __init__(self):
        self.status_code = 200
        self.body = {"access_token": "live-at", "refresh_token": "live-rt", "expires_in": 3600}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)


@pytest.fixture
def token_endpoint():
    return _TokenEndpoint()


@pytest.fixture
def app(session_factory, cipher, token_endpoint):
    application = create_app()
    registry = ConnectorRegistry(transport=httpx.MockTransport(token_endpoint))

    async def _session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[db_session] = _session
    application.dependency_overrides[get_cipher] = lambda: cipher
    application.dependency_overrides[get_connector_registry] = lambda: registry
    return application


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def _auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_token(user_id)}"}


def _redirect_params(response: httpx.Response) -> dict:
    location = urlparse(response.headers["location"])
    return {k: v[0] for k, v in parse_qs(location.query).items()}


async def _create_app(client, user_id, platform="googleAds", secret="client-secret-1234"):
    resp = await client.post(
        "/api/settings/oauth-apps",
        json={"platform": platform, "clientId": "cid", "clientSecret": secret, "scopes": []},
        headers=_auth(user_id),
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["app"]


class TestAuth:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/settings/oauth-apps"),
            ("GET", "/api/integrations/status"),
            ("GET", "/api/campaigns"),
        ],
    )
    async def test_missing_token(self, client, method, path):
        resp = await client.request(method, path)
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_bad_token(self, client):
        resp = await client.get("/api/integrations/status", headers={"Authorization": "Bearer nope.nope"})
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_non_uuid_subject(self, client):
        resp = await client.get("/api/integrations/status", headers=_auth("not-a-uuid"))
        assert resp.status_code == 401


class TestOAuthAppSettings:
    @pytest.mark.asyncio
    async def test_secret_is_masked(self, client, user_id):
        app = await _create_app(client, user_id)
        assert app["clientSecret"] == "••••1234"
        assert app["redirectUri"] == config.oauth_callback_url

        listed = (await client.get("/api/settings/oauth-apps", headers=_auth(user_id))).json()["apps"]
        assert [a["clientSecret"] for a in listed] == ["••••1234"]

    @pytest.mark.asyncio
    async def test_duplicate_is_409(self, client, user_id):
        await _create_app(client, user_id)
        resp = await client.post(
            "/api/settings/oauth-apps",
            json={"platform": "googleAds", "clientId": "other"},
            headers=_auth(user_id),
        )
        assert resp.status_code == 409
        assert "error" in resp.json()

    @pytest.mark.asyncio
    async def test_missing_client_id_is_400(self, client, user_id):
        resp = await client.post("/api/settings/oauth-apps", json={"platform": "meta"}, headers=_auth(user_id))
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_cross_user_update_and_delete_are_404(self, client, user_id, other_user_id):
        app = await _create_app(client, user_id)

        put = await client.put(
            f"/api/settings/oauth-apps/{app['id']}",
            json={"clientId": "hijack"},
            headers=_auth(other_user_id),
        )
        delete = await client.delete(f"/api/settings/oauth-apps/{app['id']}", headers=_auth(other_user_id))

        assert put.status_code == 404
        assert delete.status_code == 404
        listed = (await client.get("/api/settings/oauth-apps", headers=_auth(user_id))).json()["apps"]
        assert listed[0]["clientId"] == "cid"

    @pytest.mark.asyncio
    async def test_update_and_delete(self, client, user_id):
        app = await _create_app(client, user_id)

        put = await client.put(
            f"/api/settings/oauth-apps/{app['id']}",
            json={"clientId": "cid-2", "scopes": ["x"]},
            headers=_auth(user_id),
        )
        assert put.json() == {"success": True}
        listed = (await client.get("/api/settings/oauth-apps", headers=_auth(user_id))).json()["apps"]
        assert listed[0]["clientId"] == "cid-2"
        assert listed[0]["clientSecret"] == "••••1234"

        delete = await client.delete(f"/api/settings/oauth-apps/{app['id']}", headers=_auth(user_id))
        assert delete.json() == {"success": True}
        assert (await client.get("/api/settings/oauth-apps", headers=_auth(user_id))).json() == {"apps": []}


class TestConnect:
    @pytest.mark.asyncio
    async def test_without_app_requires_configuration(self, client, user_id):
        resp = await client.post("/api/integrations/connect", json={"platform": "googleAds"}, headers=_auth(user_id))
        assert resp.status_code == 400
        assert resp.json()["requiresConfiguration"] is True

    @pytest.mark.asyncio
    async def test_invalid_platform(self, client, user_id):
        resp = await client.post("/api/integrations/connect", json={"platform": "myspace"}, headers=_auth(user_id))
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid platform"}

    @pytest.mark.asyncio
    async def test_api_key_platform_is_rejected(self, client, user_id):
        resp = await client.post("/api/integrations/connect", json={"platform": "shopify"}, headers=_auth(user_id))
        assert resp.status_code == 400
        assert "requiresConfiguration" not in resp.json()

    @pytest.mark.asyncio
    async def test_returns_auth_url(self, client, user_id):
        await _create_app(client, user_id)
        resp = await client.post("/api/integrations/connect", json={"platform": "googleAds"}, headers=_auth(user_id))
        assert resp.status_code == 200
        assert resp.json()["authUrl"].startswith("https://accounts.google.com/o/oauth2/v2/auth?")


class TestCallback:
    async def _state(self, client, user_id, platform="googleAds"):
        await _create_app(client, user_id, platform)
        resp = await client.post("/api/integrations/connect", json={"platform": platform}, headers=_auth(user_id))
        return parse_qs(urlparse(resp.json()["authUrl"]).query)["state"][0]

    @pytest.mark.asyncio
    async def test_success_connects_and_blocks_replay(self, client, user_id, token_endpoint):
        state = await self._state(client, user_id)

        resp = await client.get("/api/integrations/callback", params={"code": "c", "state": state})
        assert resp.status_code == 307
        assert resp.headers["location"].startswith(config.dashboard_url)
        assert _redirect_params(resp) == {"tab": "integrations", "success": "googleAds connected successfully"}
        assert len(token_endpoint.requests) == 1

        status = (await client.get("/api/integrations/status", headers=_auth(user_id))).json()["integrations"]
        row = next(r for r in status if r["id"] == "googleAds")
        assert row["status"] == "connected"
        assert row["expiresAt"] is not None

        replay = await client.get("/api/integrations/callback", params={"code": "c", "state": state})
        assert _redirect_params(replay)["error"] == "Authorization request already used"
        assert len(token_endpoint.requests) == 1

    @pytest.mark.asyncio
    async def test_platform_error_param(self, client):
        resp = await client.get(
            "/api/integrations/callback",
            params={"error": "access_denied", "error_description": "User cancelled"},
        )
        assert _redirect_params(resp) == {"tab": "integrations", "error": "User cancelled"}

    @pytest.mark.asyncio
    async def test_missing_code(self, client):
        resp = await client.get("/api/integrations/callback", params={"state": "x"})
        assert _redirect_params(resp)["error"] == "Missing authorization code"

    @pytest.mark.asyncio
    async def test_forged_state(self, client):
        resp = await client.get("/api/integrations/callback", params={"code": "c", "state": "abc.def"})
        assert _redirect_params(resp)["error"] == "Invalid OAuth state"

    @pytest.mark.asyncio
    async def test_exchange_failure(self, client, user_id, token_endpoint):
        state = await self._state(client, user_id)
        token_endpoint.status_code = 400
        token_endpoint.body = {"error": "invalid_grant"}

        resp = await client.get("/api/integrations/callback", params={"code": "bad", "state": state})

        assert _redirect_params(resp)["error"] == "Failed to exchange authorization code"
        status = (await client.get("/api/integrations/status", headers=_auth(user_id))).json()["integrations"]
        assert next(r for r in status if r["id"] == "googleAds")["status"] == "disconnected"


class TestApiKey:
    @pytest.mark.asyncio
    async def test_bad_klaviyo_key(self, client, user_id):
        resp = await client.post(
            "/api/integrations/api-key",
            json={"platform": "klaviyo", "credentials": {"company": "Acme", "privateKey": "sk_123"}},
            headers=_auth(user_id),
        )
        assert resp.status_code == 400
        assert "pk_" in resp.json()["error"]

    @pytest.mark.asyncio
    async def test_missing_fields(self, client, user_id):
        resp = await client.post(
            "/api/integrations/api-key",
            json={"platform": "shopify", "credentials": {}},
            headers=_auth(user_id),
        )
        assert resp.status_code == 400
        assert resp.json()["error"].startswith("Missing required fields")

    @pytest.mark.asyncio
    async def test_rejected_sendgrid_key(self, client, user_id, token_endpoint):
        token_endpoint.status_code = 401
        token_endpoint.body = {"errors": [{"message": "authorization required"}]}

        resp = await client.post(
            "/api/integrations/api-key",
            json={"platform": "sendgrid", "credentials": {"apiKey": "SG.bad"}},
            headers=_auth(user_id),
        )

        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid credentials. Please check and try again."
        assert str(token_endpoint.requests[0].url) == "https://api.sendgrid.com/v3/user/profile"
        status = (await client.get("/api/integrations/status", headers=_auth(user_id))).json()["integrations"]
        assert next(r for r in status if r["id"] == "sendgrid")["status"] == "disconnected"

    @pytest.mark.asyncio
    async def test_connects_without_echoing_secrets(self, client, user_id):
        resp = await client.post(
            "/api/integrations/api-key",
            json={"platform": "klaviyo", "credentials": {"company": "Acme", "privateKey": "pk_live_secret"}},
            headers=_auth(user_id),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["metadata"]["connection_type"] == "api_key"
        assert body["metadata"]["credentials"] == {"company": "Acme"}
        assert "pk_live_secret" not in resp.text

        status = (await client.get("/api/integrations/status", headers=_auth(user_id))).json()["integrations"]
        assert next(r for r in status if r["id"] == "klaviyo")["status"] == "connected"


class TestDisconnectAndStatus:
    @pytest.mark.asyncio
    async def test_disconnect(self, client, user_id):
        await client.post(
            "/api/integrations/api-key",
            json={"platform": "klaviyo", "credentials": {"company": "Acme", "privateKey": "pk_x"}},
            headers=_auth(user_id),
        )

        resp = await client.post("/api/integrations/disconnect", json={"platform": "klaviyo"}, headers=_auth(user_id))
        assert resp.json() == {"success": True}

        status = (await client.get("/api/integrations/status", headers=_auth(user_id))).json()["integrations"]
        row = next(r for r in status if r["id"] == "klaviyo")
        assert row["status"] == "disconnected"
        assert row["connectedAt"] is not None

    @pytest.mark.asyncio
    async def test_reconnect_after_disconnect(self, client, user_id):
        await client.post(
            "/api/integrations/api-key",
            json={"platform": "shopify", "credentials": {"storeName": "demo", "accessToken": "shpat_x"}},
            headers=_auth(user_id),
        )
        await client.post("/api/integrations/disconnect", json={"platform": "shopify"}, headers=_auth(user_id))

        resp = await client.post("/api/integrations/reconnect", json={"platform": "shopify"}, headers=_auth(user_id))

        assert resp.status_code == 200
        assert resp.json()["metadata"]["credentials"] == {"storeName": "demo"}
        assert "disconnected_at" not in resp.json()["metadata"]
        status = (await client.get("/api/integrations/status", headers=_auth(user_id))).json()["integrations"]
        assert next(r for r in status if r["id"] == "shopify")["status"] == "connected"

    @pytest.mark.asyncio
    async def test_reconnect_unknown(self, client, user_id, other_user_id):
        await client.post(
            "/api/integrations/api-key",
            json={"platform": "klaviyo", "credentials": {"company": "Acme", "privateKey": "pk_x"}},
            headers=_auth(user_id),
        )
        resp = await client.post("/api/integrations/reconnect", json={"platform": "klaviyo"}, headers=_auth(other_user_id))
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_disconnect_unknown(self, client, user_id):
        resp = await client.post("/api/integrations/disconnect", json={"platform": "googleAds"}, headers=_auth(user_id))
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_status_covers_catalog(self, client, user_id):
        status = (await client.get("/api/integrations/status", headers=_auth(user_id))).json()["integrations"]
        assert [r["id"] for r in status] == get_platform_catalog().ids()
        assert all(r["status"] == "disconnected" for r in status)

    @pytest.mark.asyncio
    async def test_refresh_without_integration(self, client, user_id):
        resp = await client.post("/api/integrations/refresh", json={"platform": "googleAds"}, headers=_auth(user_id))
        assert resp.status_code == 404


class TestCampaigns:
    @pytest.mark.asyncio
    async def test_synthetic_feed(self, client, user_id):
        resp = await client.get(
            "/api/campaigns", params={"platforms": "metaAds,googleAds"}, headers=_auth(user_id)
        )
        assert resp.status_code == 200
        body = resp.json()
        assert len(body["campaigns"]) == 6
        assert len(body["monthlyData"]) == 12
        assert set(body["metrics"]) == {"totalSpend", "totalClicks", "totalConversions", "totalImpressions"}

    @pytest.mark.asyncio
    async def test_no_platforms(self, client, user_id):
        body = (await client.get("/api/campaigns", headers=_auth(user_id))).json()
        assert body["campaigns"] == []
        assert body["metrics"]["totalSpend"] == 0.0
