import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from shared.auth.roles import AppRole
from shared.database.store import EntityType, SqlTicketStore
from services.ticket_qr.services.backfill_service import QRBackfillService
from services.ticket_qr.tasks.qr_tasks import fix_missing_qr_codes_task

from conftest import USER_ID


def seed_unresolved(store):
    base = datetime(2025, 6, 1, tzinfo=timezone.utc)
    t1 = store.add_ticket(created_at=base)
    t2 = store.add_ticket(created_at=base + timedelta(minutes=1))
    t3 = store.add_ticket(created_at=base + timedelta(minutes=2))
    return t1, t2, t3


@pytest.mark.asyncio
async def test_backfill_continues_past_individual_failures(store):
    t1, t2, t3 = seed_unresolved(store)
    store.fail_generate_on_calls = {2}

    result = await QRBackfillService(store).run()

    assert result.success is True
    assert result.fixed_count == 2
    assert len(result.errors) == 1
    assert result.errors[0].startswith(t2.id)
    assert store.stored(EntityType.TICKET, t1.id).qr_code_token
    assert store.stored(EntityType.TICKET, t2.id).qr_code_token is None
    assert store.stored(EntityType.TICKET, t3.id).qr_code_token

    response = result.to_response()
    assert response["message"] == "Fixed 2 tickets"
    assert len(response["errors"]) == 1


@pytest.mark.asyncio
async def test_backfill_rerun_only_touches_remaining_tickets(store):
    t1, t2, t3 = seed_unresolved(store)
    store.fail_generate_on_calls = {2}
    await QRBackfillService(store).run()
    t1_token = store.stored(EntityType.TICKET, t1.id).qr_code_token

    second = await QRBackfillService(store).run()

    assert second.fixed_count == 1
    assert second.errors == []
    assert store.stored(EntityType.TICKET, t2.id).qr_code_token
    assert store.stored(EntityType.TICKET, t1.id).qr_code_token == t1_token

    third = await QRBackfillService(store).run()
    assert third.fixed_count == 0
    assert third.to_response() == {
        "success": True,
        "message": "No tickets need QR code fixes",
        "fixed_count": 0,
    }


@pytest.mark.asyncio
async def test_backfill_ignores_unpaid_and_resolved_tickets(store):
    base = datetime(2025, 6, 1, tzinfo=timezone.utc)
    t1 = store.add_ticket(created_at=base)
    t2 = store.add_ticket(qr_code_token="abc", created_at=base + timedelta(minutes=1))
    t3 = store.add_ticket(status="pending", created_at=base + timedelta(minutes=2))

    result = await QRBackfillService(store).run()

    assert result.fixed_count == 1
    assert result.errors == []
    assert store.generate_calls == 1
    assert json.loads(store.stored(EntityType.TICKET, t1.id).qr_code_data)["id"] == t1.id
    assert store.stored(EntityType.TICKET, t2.id).qr_code_token == "abc"
    assert store.stored(EntityType.TICKET, t3.id).qr_code_token is None


@pytest.mark.asyncio
async def test_backfill_recovers_session_after_failed_statement(store):
    t1, t2, t3 = seed_unresolved(store)
    store.add_profile(full_name="Rider One")
    store.transactional = True
    store.fail_generate_on_calls = {1}

    result = await QRBackfillService(store).run()

    assert result.fixed_count == 2
    assert len(result.errors) == 1
    assert result.errors[0].startswith(t1.id)
    assert store.rollbacks == 1
    assert store.stored(EntityType.TICKET, t1.id).qr_code_token is None
    assert store.stored(EntityType.TICKET, t2.id).qr_code_token
    assert store.stored(EntityType.TICKET, t3.id).qr_code_token


@pytest.mark.asyncio
async def test_sql_store_rolls_back_failed_reads():
    db = AsyncMock()
    db.execute.side_effect = RuntimeError("function generate_qr_token() does not exist")
    sql_store = SqlTicketStore(db)

    with pytest.raises(RuntimeError):
        await sql_store.generate_token()
    with pytest.raises(RuntimeError):
        await sql_store.get_profile(USER_ID)

    assert db.rollback.await_count == 2


@pytest.mark.asyncio
async def test_backfill_reports_selection_failure(store):
    store.fail_list = True

    result = await QRBackfillService(store).run()

    assert result.success is False
    assert result.to_response()["error"].startswith("Failed to fetch tickets")


def test_admin_endpoint_runs_backfill(client, store):
    store.roles[USER_ID] = [AppRole.ADMIN.value]
    seed_unresolved(store)

    response = client.post("/api/v1/admin/fix-missing-qr-codes")

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Fixed 3 tickets", "fixed_count": 3}


def test_admin_endpoint_returns_500_when_selection_fails(client, store):
    store.roles[USER_ID] = [AppRole.ADMIN.value]
    store.fail_list = True

    response = client.post("/api/v1/admin/fix-missing-qr-codes")

    assert response.status_code == 500
    assert response.json()["success"] is False


def test_admin_endpoint_requires_admin(client, store):
    store.roles[USER_ID] = [AppRole.MODERATOR.value]

    response = client.post("/api/v1/admin/fix-missing-qr-codes")

    assert response.status_code == 403
    assert response.json() == {"error": "Admin access required"}


def test_celery_task_returns_backfill_result():
    expected = {"success": True, "message": "No tickets need QR code fixes", "fixed_count": 0}

    async def fake_run_backfill():
        return expected

    with patch("services.ticket_qr.tasks.qr_tasks.run_backfill", fake_run_backfill):
        assert fix_missing_qr_codes_task.run() == expected
