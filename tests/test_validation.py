import pytest

from conftest import USER_ID, in_days
from shared.auth.roles import AppRole
from shared.database.store import EntityType
from services.ticket_validation.services.ticket_service import PUBLIC_FAILURE_REASON, TicketValidationService


@pytest.fixture
def staff_client(client, store):
    store.roles[USER_ID] = [AppRole.MODERATOR.value]
    return client


def test_valid_ticket_is_marked_used(staff_client, store):
    store.add_profile(full_name="Ana Rider")
    ticket = store.add_ticket(qr_code_token="tok-ok", valid_until=in_days(1))

    response = staff_client.post(
        "/api/v1/tickets/validate",
        json={"qr_code_token": "tok-ok", "validator_name": "Gate A"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is True
    assert data["type"] == "ticket"
    assert data["ticket_info"]["user_name"] == "Ana Rider"
    saved = store.stored(EntityType.TICKET, ticket.id)
    assert saved.used_at is not None
    assert saved.used_by == "Gate A"


def test_second_scan_is_rejected_as_used(staff_client, store):
    ticket = store.add_ticket(qr_code_token="tok-twice")

    first = staff_client.post("/api/v1/tickets/validate", json={"qr_code_token": "tok-twice"}).json()
    second = staff_client.post("/api/v1/tickets/validate", json={"qr_code_token": "tok-twice"}).json()

    assert first["valid"] is True
    assert store.stored(EntityType.TICKET, ticket.id).used_by == "Door Staff"
    assert second["valid"] is False
    assert second["reason"] == "Ticket already used"


@pytest.mark.parametrize(
    "fields, reason",
    [
        ({"valid_until": in_days(-1)}, "Ticket expired"),
        ({"status": "pending"}, "Ticket not paid"),
    ],
)
def test_invalid_tickets_are_not_consumed(staff_client, store, fields, reason):
    ticket = store.add_ticket(qr_code_token="tok-bad", **fields)

    data = staff_client.post("/api/v1/tickets/validate", json={"qr_code_token": "tok-bad"}).json()

    assert data["valid"] is False
    assert data["reason"] == reason
    assert store.stored(EntityType.TICKET, ticket.id).used_at is None


def test_subscription_rules(staff_client, store):
    store.add_subscription(qr_code_token="sub-ok", current_period_end=in_days(10))
    store.add_subscription(qr_code_token="sub-old", current_period_end=in_days(-2))
    store.add_subscription(qr_code_token="sub-off", status="canceled")

    ok = staff_client.post("/api/v1/tickets/validate", json={"qr_code_token": "sub-ok"}).json()
    old = staff_client.post("/api/v1/tickets/validate", json={"qr_code_token": "sub-old"}).json()
    off = staff_client.post("/api/v1/tickets/validate", json={"qr_code_token": "sub-off"}).json()

    assert ok["valid"] is True
    assert ok["type"] == "subscription"
    assert old["reason"] == "Subscription expired"
    assert off["reason"] == "Subscription not active"


def test_media_pass_is_never_consumed(staff_client, store):
    media_pass = store.add_media_pass(qr_code_token="mp-ok", pass_type="30", valid_until=in_days(30))

    first = staff_client.post("/api/v1/tickets/validate", json={"qr_code_token": "mp-ok"}).json()
    second = staff_client.post("/api/v1/tickets/validate", json={"qr_code_token": "mp-ok"}).json()

    assert first["valid"] is True
    assert second["valid"] is True
    assert first["media_pass_info"]["pass_type"] == "30"
    assert store.stored(EntityType.MEDIA_PASS, media_pass.id).used_at is None


def test_unknown_token(staff_client):
    data = staff_client.post("/api/v1/tickets/validate", json={"qr_code_token": "nope"}).json()

    assert data == {"valid": False, "reason": "QR code not found or invalid"}


def test_validation_requires_staff_role(client, store):
    store.roles[USER_ID] = [AppRole.DJ.value]
    ticket = store.add_ticket(qr_code_token="tok-dj")

    response = client.post("/api/v1/tickets/validate", json={"qr_code_token": "tok-dj"})

    assert response.status_code == 403
    assert store.stored(EntityType.TICKET, ticket.id).used_at is None


def test_role_lookup_failure_is_503_not_default_role(client, store):
    store.fail_roles = True

    response = client.post("/api/v1/tickets/validate", json={"qr_code_token": "any"})

    assert response.status_code == 503


# ==================== PÚBLICA ====================

def test_public_verification_is_read_only(anonymous_client, store):
    ticket = store.add_ticket(qr_code_token="tok-pub", valid_until=in_days(1))

    data = anonymous_client.post("/api/v1/tickets/verify-public", json={"qr_code_token": "tok-pub"}).json()

    assert data["valid"] is True
    assert store.stored(EntityType.TICKET, ticket.id).used_at is None


def test_public_verification_uses_public_messages(anonymous_client, store):
    store.add_ticket(qr_code_token="tok-used", used_at=in_days(-1), used_by="Door Staff")

    data = anonymous_client.post("/api/v1/tickets/verify-public", json={"qr_code_token": "tok-used"}).json()

    assert data["valid"] is False
    assert data["reason"] == "This ticket has already been used"


def test_public_verification_hides_internal_failures(anonymous_client, store):
    store.fail_lookup = True

    response = anonymous_client.post("/api/v1/tickets/verify-public", json={"qr_code_token": "tok"})

    assert response.status_code == 200
    assert response.json() == {"valid": False, "reason": PUBLIC_FAILURE_REASON}


@pytest.mark.asyncio
async def test_lost_mark_used_race_reports_used(store):
    store.add_ticket(qr_code_token="tok-race")

    async def lose_race(ticket_id, used_by, used_at):
        return False

    store.mark_ticket_used = lose_race
    result = await TicketValidationService(store).validate("tok-race")

    assert result["valid"] is False
    assert result["reason"] == "Ticket already used"
