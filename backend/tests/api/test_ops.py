import pytest

from gittogether.settings import settings


@pytest.fixture
def ops_settings():
    saved = (settings.obs_metrics_public, settings.obs_admin_token)
    yield settings
    settings.obs_metrics_public, settings.obs_admin_token = saved


@pytest.mark.asyncio
async def test_liveness_and_version(api_client):
    live = await api_client.get("/health/live")
    assert live.json() == {"status": "ok"}
    version = await api_client.get("/version")
    assert version.json()["service"] == settings.service_name


@pytest.mark.asyncio
async def test_readiness_accepts_memory_store_in_dev(api_client):
    response = await api_client.get("/health/ready")
    assert response.status_code == 200
    body = response.json()
    assert body["store"] == "memory"
    assert body["checks"]["redis"]["ok"] is True
    assert body["checks"]["store"] == {"ok": True, "mode": "memory"}


@pytest.mark.asyncio
async def test_readiness_requires_postgres_outside_dev(api_client, monkeypatch):
    monkeypatch.setattr(settings, "environment", "production")
    response = await api_client.get("/health/ready")
    assert response.status_code == 503
    store = response.json()["checks"]["store"]
    assert store["ok"] is False
    assert store["error"] == "postgres_unavailable"


@pytest.mark.asyncio
async def test_readiness_degrades_when_redis_is_down(api_client, fake_redis, monkeypatch):
    async def down():
        raise ConnectionError("redis down")

    monkeypatch.setattr(fake_redis, "ping", down)
    response = await api_client.get("/health/ready")
    assert response.status_code == 503
    assert response.json()["checks"]["redis"]["ok"] is False


@pytest.mark.asyncio
async def test_metrics_access(api_client, ops_settings):
    ops_settings.obs_metrics_public = False
    ops_settings.obs_admin_token = None
    unconfigured = await api_client.get("/metrics")
    assert unconfigured.status_code == 403
    assert unconfigured.json()["detail"] == "admin_token_not_configured"

    ops_settings.obs_admin_token = "s3cret"
    wrong = await api_client.get("/metrics", headers={"X-Admin-Token": "nope"})
    assert wrong.status_code == 403
    allowed = await api_client.get("/metrics", headers={"X-Admin-Token": "s3cret"})
    assert allowed.status_code == 200
    assert "gittogether_http_requests_total" in allowed.text

    ops_settings.obs_admin_token = None
    ops_settings.obs_metrics_public = True
    public = await api_client.get("/metrics")
    assert public.status_code == 200
