import pytest
from sqlalchemy import select

from app.models import AuditLog, SnapshotType
from app.repositories.workflow_version_repository import count_workflow_versions, get_latest_workflow_version
from app.services.notification_dispatcher import EVENT_WORKFLOW_ROLLED_BACK
from app.services.rollback_service import RollbackMode, RollbackService
from app.services.workflow_errors import RemoteUnavailable, RollbackFailed, ValidationError
from tests.utils import seed_user, seed_versions, seed_workflow


@pytest.fixture()
def service(remote, credentials, notifier):
    return RollbackService(remote, credentials, notifier, write_timeout=5)


@pytest.fixture()
def protected(db, remote):
    owner = seed_user(db)
    workflow = seed_workflow(db, owner=owner)
    v1, v2 = seed_versions(db, workflow=workflow, payloads=[{"name": "W", "a": 1}, {"name": "W", "a": 2}])
    remote.definitions["101"] = {"name": "W", "a": 2}
    return owner, workflow, v1, v2


@pytest.mark.asyncio
async def test_overwrite_restores_target_and_records_version(db, remote, notifier, service, protected):
    owner, workflow, v1, _ = protected

    version = await service.rollback(db, workflow.id, v1.id, RollbackMode.OVERWRITE, actor_id=owner.id)

    assert remote.definitions["101"] == {"name": "W", "a": 1}
    assert version.version_number == 3
    assert version.snapshot_type is SnapshotType.ROLLBACK_RESULT
    assert version.data == {"name": "W", "a": 1}
    assert version.created_by == str(owner.id)

    audit = db.execute(select(AuditLog).where(AuditLog.action == "rollback_workflow")).scalars().one()
    assert audit.new_value["target_version_id"] == str(v1.id)
    assert audit.new_value["mode"] == "overwrite"
    assert audit.old_value["version_number"] == 2
    assert notifier.names() == [EVENT_WORKFLOW_ROLLED_BACK]


@pytest.mark.asyncio
async def test_create_new_inactive_leaves_original_untouched(db, remote, service, protected):
    owner, workflow, v1, _ = protected

    version = await service.rollback(db, workflow.id, v1.id, "create-new-inactive", actor_id=owner.id)

    assert remote.definitions["101"] == {"name": "W", "a": 2}
    assert len(remote.created) == 1
    created = remote.created[0]
    assert created["a"] == 1
    assert created["enabled"] is False
    assert created["name"] == "W (restored v1)"

    assert version.version_number == 3
    assert version.snapshot_type is SnapshotType.ROLLBACK_RESULT
    assert version.data == {"name": "W", "a": 1}
    assert "9000" in version.note


@pytest.mark.asyncio
async def test_target_from_another_workflow_is_rejected(db, remote, service, protected):
    owner, workflow, _, _ = protected
    other = seed_workflow(db, owner=owner, remote_workflow_id="202")
    (foreign,) = seed_versions(db, workflow=other, payloads=[{"b": 1}])

    with pytest.raises(ValidationError):
        await service.rollback(db, workflow.id, foreign.id, RollbackMode.OVERWRITE, actor_id=owner.id)

    assert count_workflow_versions(db, workflow_id=workflow.id) == 2
    assert remote.updates == []
    assert remote.created == []


@pytest.mark.asyncio
async def test_unknown_mode_is_rejected(db, service, protected):
    owner, workflow, v1, _ = protected

    with pytest.raises(ValidationError):
        await service.rollback(db, workflow.id, v1.id, "merge", actor_id=owner.id)


@pytest.mark.asyncio
async def test_write_failure_records_nothing(db, remote, notifier, service, protected):
    owner, workflow, v1, _ = protected
    remote.write_errors.append(RemoteUnavailable("HubSpot returned 503", status_code=503))

    with pytest.raises(RollbackFailed) as exc_info:
        await service.rollback(db, workflow.id, v1.id, RollbackMode.OVERWRITE, actor_id=owner.id)

    assert exc_info.value.state == "writing"
    assert exc_info.value.details["upstream_code"] == "remote_unavailable"
    assert count_workflow_versions(db, workflow_id=workflow.id) == 2
    assert get_latest_workflow_version(db, workflow_id=workflow.id).data == {"name": "W", "a": 2}
    assert notifier.events == []


@pytest.mark.asyncio
async def test_recording_failure_after_write_is_reported(db, remote, service, protected, monkeypatch):
    owner, workflow, v1, _ = protected

    def broken_append(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr("app.services.rollback_service.append_workflow_version", broken_append)

    with pytest.raises(RollbackFailed) as exc_info:
        await service.rollback(db, workflow.id, v1.id, RollbackMode.OVERWRITE, actor_id=owner.id)

    assert exc_info.value.state == "recording"
    assert remote.definitions["101"] == {"name": "W", "a": 1}


@pytest.mark.asyncio
async def test_hanging_write_times_out_without_recording(db, remote, credentials, notifier, protected):
    owner, workflow, v1, _ = protected
    remote.delays["101"] = 5
    service = RollbackService(remote, credentials, notifier, write_timeout=0.05)

    with pytest.raises(RollbackFailed) as exc_info:
        await service.rollback(db, workflow.id, v1.id, RollbackMode.OVERWRITE, actor_id=owner.id)

    assert exc_info.value.state == "writing"
    assert exc_info.value.details["upstream_code"] == "remote_unavailable"
    assert remote.updates == []
    assert count_workflow_versions(db, workflow_id=workflow.id) == 2
