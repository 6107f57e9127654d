import json
import uuid
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from app.models import User
from app.services.credential_provider import Credential, StoredCredentialProvider
from app.services.hubspot_workflow_client import HubSpotWorkflowClient, build_inactive_copy
from app.services.workflow_errors import AuthExpired, RemoteNotFound, RemoteUnavailable
from tests.utils import seed_user

CREDENTIAL = Credential(account_id=uuid.uuid4(), access_token="access-123")


def _client(handler) -> HubSpotWorkflowClient:
    return HubSpotWorkflowClient(base_url="https://hubspot.test", timeout=2, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_fetch_returns_definition_with_metadata():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/automation/v3/workflows/101"
        assert request.headers["Authorization"] == "Bearer access-123"
        return httpx.Response(
            200,
            json={"id": 101, "name": "Lead nurture", "enabled": True, "updatedAt": 1767225600000},
        )

    definition = await _client(handler).fetch(CREDENTIAL, "101")

    assert definition.remote_id == "101"
    assert definition.status == "active"
    assert definition.name == "Lead nurture"
    assert definition.updated_at == datetime(2026, 1, 1, tzinfo=UTC)


@pytest.mark.asyncio
async def test_list_workflows_skips_entries_without_id():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/automation/v3/workflows"
        return httpx.Response(200, json={"workflows": [{"id": 1, "name": "A", "enabled": False}, {"name": "orphan"}]})

    definitions = await _client(handler).list_workflows(CREDENTIAL)

    assert [(d.remote_id, d.status) for d in definitions] == [("1", "inactive")]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status_code", "expected"),
    [(401, AuthExpired), (403, AuthExpired), (404, RemoteNotFound), (500, RemoteUnavailable), (422, RemoteUnavailable)],
)
async def test_status_codes_map_to_error_kinds(status_code, expected):
    client = _client(lambda request: httpx.Response(status_code, json={"message": "nope"}))

    with pytest.raises(expected):
        await client.fetch(CREDENTIAL, "101")


@pytest.mark.asyncio
async def test_rate_limit_carries_retry_after():
    client = _client(lambda request: httpx.Response(429, headers={"Retry-After": "7"}))

    with pytest.raises(RemoteUnavailable) as exc_info:
        await client.fetch(CREDENTIAL, "101")

    assert exc_info.value.status_code == 429
    assert exc_info.value.retry_after == 7.0


@pytest.mark.asyncio
async def test_timeout_is_reported_as_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(RemoteUnavailable):
        await _client(handler).fetch(CREDENTIAL, "101")


@pytest.mark.asyncio
async def test_update_and_create_inactive_requests():
    seen: list[tuple[str, str, dict]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        seen.append((request.method, request.url.path, body))
        if request.method == "POST":
            return httpx.Response(200, json={**body, "id": 555})
        return httpx.Response(200, json={**body, "id": 101})

    client = _client(handler)
    updated = await client.update(CREDENTIAL, "101", {"name": "W", "a": 1})
    created = await client.create_inactive(CREDENTIAL, {"name": "W copy", "a": 1})

    assert updated.remote_id == "101"
    assert created.remote_id == "555"
    assert seen[0][:2] == ("PUT", "/automation/v3/workflows/101")
    assert seen[1][:2] == ("POST", "/automation/v3/workflows")
    assert seen[1][2]["enabled"] is False


def test_build_inactive_copy_strips_server_fields():
    body = build_inactive_copy(
        {"id": 1, "portalId": 9, "insertedAt": 1, "name": "W", "enabled": True, "actions": []},
        name_suffix="(restored v2)",
    )
    assert body == {"name": "W (restored v2)", "enabled": False, "actions": []}


@pytest.mark.asyncio
async def test_stored_credential_is_returned_while_valid(session_factory):
    with session_factory() as db:
        user = seed_user(db, expires_at=datetime.now(UTC) + timedelta(hours=1))

    def handler(request):
        raise AssertionError("no refresh expected")

    provider = StoredCredentialProvider(session_factory, transport=httpx.MockTransport(handler))
    credential = await provider.get_valid_credential(user.id)

    assert credential.access_token == "stored-access-token"


@pytest.mark.asyncio
async def test_expired_credential_is_refreshed_and_stored(session_factory):
    with session_factory() as db:
        user = seed_user(
            db,
            refresh_token="refresh-1",
            expires_at=datetime.now(UTC) - timedelta(minutes=1),
        )

    def handler(request: httpx.Request) -> httpx.Response:
        form = dict(pair.split("=", 1) for pair in request.content.decode().split("&"))
        assert form["grant_type"] == "refresh_token"
        assert form["refresh_token"] == "refresh-1"
        return httpx.Response(200, json={"access_token": "fresh", "refresh_token": "refresh-2", "expires_in": 1800})

    provider = StoredCredentialProvider(
        session_factory,
        token_url="https://hubspot.test/oauth/v1/token",
        client_id="cid",
        client_secret="secret",
        transport=httpx.MockTransport(handler),
    )
    credential = await provider.get_valid_credential(user.id)

    assert credential.access_token == "fresh"
    with session_factory() as db:
        stored = db.get(User, user.id)
        assert stored.hubspot_access_token == "fresh"
        assert stored.hubspot_refresh_token == "refresh-2"


@pytest.mark.asyncio
async def test_rejected_refresh_token_raises_auth_expired(session_factory):
    with session_factory() as db:
        user = seed_user(db, refresh_token="revoked")

    provider = StoredCredentialProvider(
        session_factory,
        transport=httpx.MockTransport(lambda request: httpx.Response(400, json={"status": "BAD_REFRESH_TOKEN"})),
    )

    with pytest.raises(AuthExpired):
        await provider.get_valid_credential(user.id, force_refresh=True)


@pytest.mark.asyncio
async def test_missing_refresh_token_raises_auth_expired(session_factory):
    with session_factory() as db:
        user = seed_user(db, access_token=None)

    provider = StoredCredentialProvider(session_factory)

    with pytest.raises(AuthExpired):
        await provider.get_valid_credential(user.id)


@pytest.mark.asyncio
async def test_malformed_refresh_response_is_unavailable(session_factory):
    with session_factory() as db:
        user = seed_user(db, refresh_token="refresh-1")

    provider = StoredCredentialProvider(
        session_factory,
        transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>maintenance</html>")),
    )

    with pytest.raises(RemoteUnavailable):
        await provider.get_valid_credential(user.id, force_refresh=True)
