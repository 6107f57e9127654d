from datetime import UTC, datetime, timedelta

import pytest

from app.models import Workflow
from app.repositories.workflow_version_repository import count_workflow_versions
from app.services.snapshot_service import SnapshotService
from app.services.sync_scheduler import SyncScheduler, is_due
from app.services.workflow_errors import RemoteUnavailable
from tests.utils import FakeCredentialProvider, make_session_factory, seed_user, seed_versions, seed_workflow


@pytest.fixture()
def file_session_factory(tmp_path):
    return make_session_factory(f"sqlite+pysqlite:///{tmp_path / 'sync.db'}")


def _scheduler(session_factory, remote, credentials, notifier, **kwargs):
    return SyncScheduler(
        session_factory,
        SnapshotService(remote, credentials, notifier),
        credentials,
        concurrency=kwargs.pop("concurrency", 2),
        reconcile_timeout=kwargs.pop("reconcile_timeout", 5),
    )


@pytest.mark.asyncio
async def test_one_failure_does_not_abort_the_cycle(file_session_factory, remote, credentials, notifier):
    with file_session_factory() as db:
        owner = seed_user(db)
        ok_unchanged = seed_workflow(db, owner=owner, remote_workflow_id="1")
        broken = seed_workflow(db, owner=owner, remote_workflow_id="2")
        ok_changed = seed_workflow(db, owner=owner, remote_workflow_id="3")
        seed_versions(db, workflow=ok_unchanged, payloads=[{"a": 1}])
        seed_versions(db, workflow=ok_changed, payloads=[{"c": 1}])
    remote.definitions.update({"1": {"a": 1}, "2": {"b": 1}, "3": {"c": 2}})
    remote.fetch_errors["2"] = [RemoteUnavailable("HubSpot returned 502", status_code=502)]

    report = await _scheduler(file_session_factory, remote, credentials, notifier).run_cycle()

    assert report.accounts == 1
    assert report.reconciled == 2
    assert report.changed == 1
    assert report.failed == 1
    assert report.skipped == 0
    assert list(report.failures) == [str(broken.id)]
    with file_session_factory() as db:
        assert count_workflow_versions(db, workflow_id=ok_unchanged.id) == 1
        assert count_workflow_versions(db, workflow_id=ok_changed.id) == 2
        assert count_workflow_versions(db, workflow_id=broken.id) == 0
        assert db.get(Workflow, broken.id).sync_status == "error"


@pytest.mark.asyncio
async def test_accounts_without_credentials_are_skipped(file_session_factory, remote, notifier):
    with file_session_factory() as db:
        good = seed_user(db, email="good@example.com")
        expired = seed_user(db, email="expired@example.com")
        seed_workflow(db, owner=good, remote_workflow_id="1")
        seed_workflow(db, owner=expired, remote_workflow_id="2")
        seed_workflow(db, owner=expired, remote_workflow_id="3")
    remote.definitions.update({"1": {"a": 1}, "2": {"b": 1}, "3": {"c": 1}})
    credentials = FakeCredentialProvider(rejected_accounts={expired.id})

    report = await _scheduler(file_session_factory, remote, credentials, notifier).run_cycle()

    assert report.accounts == 2
    assert report.reconciled == 1
    assert report.skipped == 2
    assert report.failed == 0
    assert {remote_id for _, remote_id in remote.fetch_calls} == {"1"}


@pytest.mark.asyncio
async def test_unexpected_credential_error_fails_only_that_account(file_session_factory, remote, notifier):
    with file_session_factory() as db:
        broken = seed_user(db, email="broken@example.com")
        good = seed_user(db, email="good@example.com")
        broken_workflow = seed_workflow(db, owner=broken, remote_workflow_id="1")
        good_workflow = seed_workflow(db, owner=good, remote_workflow_id="2")
    remote.definitions.update({"1": {"a": 1}, "2": {"b": 1}})
    credentials = FakeCredentialProvider(broken_accounts={broken.id})

    report = await _scheduler(file_session_factory, remote, credentials, notifier).run_cycle(
        account_ids=[broken.id, good.id]
    )

    assert report.accounts == 2
    assert report.reconciled == 1
    assert report.failed == 1
    assert "ValueError" in report.failures[str(broken_workflow.id)]
    assert report.finished_at is not None
    with file_session_factory() as db:
        assert count_workflow_versions(db, workflow_id=good_workflow.id) == 1
        assert count_workflow_versions(db, workflow_id=broken_workflow.id) == 0


@pytest.mark.asyncio
async def test_account_that_crashes_is_reported_and_siblings_finish(
    file_session_factory, remote, credentials, notifier, monkeypatch
):
    with file_session_factory() as db:
        crashing = seed_user(db, email="crashing@example.com")
        good = seed_user(db, email="good@example.com")
        seed_workflow(db, owner=crashing, remote_workflow_id="1")
        good_workflow = seed_workflow(db, owner=good, remote_workflow_id="2")
    remote.definitions.update({"1": {"a": 1}, "2": {"b": 1}})
    scheduler = _scheduler(file_session_factory, remote, credentials, notifier)
    real_sync_account = scheduler._sync_account

    async def sync_account(account_id, semaphore, now):
        if account_id == crashing.id:
            raise RuntimeError("connection pool exhausted")
        return await real_sync_account(account_id, semaphore, now)

    monkeypatch.setattr(scheduler, "_sync_account", sync_account)

    report = await scheduler.run_cycle(account_ids=[crashing.id, good.id])

    assert report.reconciled == 1
    assert report.failed == 1
    assert "RuntimeError" in report.failures[str(crashing.id)]
    with file_session_factory() as db:
        assert count_workflow_versions(db, workflow_id=good_workflow.id) == 1


@pytest.mark.asyncio
async def test_hanging_reconcile_is_timed_out(file_session_factory, remote, credentials, notifier):
    with file_session_factory() as db:
        owner = seed_user(db)
        slow = seed_workflow(db, owner=owner, remote_workflow_id="slow")
        fast = seed_workflow(db, owner=owner, remote_workflow_id="fast")
    remote.definitions.update({"slow": {"a": 1}, "fast": {"b": 1}})
    remote.delays["slow"] = 1.0

    report = await _scheduler(
        file_session_factory, remote, credentials, notifier, reconcile_timeout=0.05
    ).run_cycle()

    assert report.failed == 1
    assert report.reconciled == 1
    with file_session_factory() as db:
        assert count_workflow_versions(db, workflow_id=fast.id) == 1
        assert count_workflow_versions(db, workflow_id=slow.id) == 0
        assert "timed out" in db.get(Workflow, slow.id).last_sync_error


@pytest.mark.asyncio
async def test_only_auto_synced_protected_workflows_run(file_session_factory, remote, credentials, notifier):
    with file_session_factory() as db:
        owner = seed_user(db)
        seed_workflow(db, owner=owner, remote_workflow_id="on")
        seed_workflow(db, owner=owner, remote_workflow_id="manual", auto_sync=False)
        seed_workflow(db, owner=owner, remote_workflow_id="off", is_protected=False)
    remote.definitions.update({"on": {"a": 1}, "manual": {"b": 1}, "off": {"c": 1}})

    report = await _scheduler(file_session_factory, remote, credentials, notifier).run_cycle()

    assert report.reconciled == 1
    assert [remote_id for _, remote_id in remote.fetch_calls] == ["on"]


def test_is_due_respects_per_workflow_interval():
    now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    workflow = Workflow(is_protected=True, auto_sync=True, sync_interval_minutes=60)

    workflow.last_synced_at = None
    assert is_due(workflow, now)

    workflow.last_synced_at = now - timedelta(minutes=30)
    assert not is_due(workflow, now)

    workflow.last_synced_at = now - timedelta(minutes=60)
    assert is_due(workflow, now)

    workflow.sync_interval_minutes = None
    workflow.last_synced_at = now
    assert is_due(workflow, now)

    workflow.auto_sync = False
    assert not is_due(workflow, now)
