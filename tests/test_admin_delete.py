from conftest import USER_ID
from shared.auth.roles import AppRole
from shared.database.store import EntityType


def test_admin_deletes_ticket(client, store):
    store.roles[USER_ID] = [AppRole.ADMIN.value]
    ticket = store.add_ticket()

    response = client.post("/api/v1/admin/tickets/delete", json={"ticketId": ticket.id})

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "Ticket deleted successfully",
        "ticketId": ticket.id,
    }
    assert (EntityType.TICKET, ticket.id) not in store.records


def test_delete_unknown_ticket_is_404(client, store):
    store.roles[USER_ID] = [AppRole.ADMIN.value]

    response = client.post("/api/v1/admin/tickets/delete", json={"ticketId": "missing"})

    assert response.status_code == 404
    assert response.json() == {"error": "Ticket not found"}


def test_non_admin_cannot_delete(client, store):
    store.roles[USER_ID] = [AppRole.MODERATOR.value, AppRole.USER.value]
    ticket = store.add_ticket()

    response = client.post("/api/v1/admin/tickets/delete", json={"ticketId": ticket.id})

    assert response.status_code == 403
    assert response.json() == {"error": "Admin access required"}
    assert (EntityType.TICKET, ticket.id) in store.records


def test_delete_requires_ticket_id(client, store):
    store.roles[USER_ID] = [AppRole.ADMIN.value]

    response = client.post("/api/v1/admin/tickets/delete", json={})

    assert response.status_code == 400
