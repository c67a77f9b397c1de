import os

# Antes de importar la app: Settings se instancia al importar app.core.config
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "anon-test-key")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")
os.environ.setdefault("APP_BASE_URL", "https://skateburn.test")

import dataclasses
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set, Tuple

import pytest
from fastapi.testclient import TestClient

from main import app
from shared.auth.dependencies import get_current_user
from shared.database.store import (
    DuplicateRecordError,
    EntityType,
    PassRecord,
    ProfileRecord,
    TicketStore,
    get_ticket_store,
)

USER_ID = "6f1c2f9e-3d1b-4f7a-9a55-0c8f3b0d2e11"
USER_EMAIL = "rider@example.com"
OTHER_USER_ID = "0a9d7c44-8e2f-4b13-a6c1-5d3e9f2b7a80"


class InMemoryTicketStore(TicketStore):
    """TicketStore en memoria con puntos de falla configurables"""

    def __init__(self):
        self.records: Dict[Tuple[EntityType, str], PassRecord] = {}
        self.profiles: Dict[str, ProfileRecord] = {}
        self.roles: Dict[str, List[str]] = {}

        self.generated_tokens: List[str] = []
        self.generate_calls = 0
        self.fail_generate_on_calls: Set[int] = set()
        self.fail_assign_ids: Set[str] = set()
        self.racing_tokens: Dict[str, str] = {}
        self.fail_list = False
        self.fail_roles = False
        self.fail_profiles = False
        self.fail_lookup = False
        self.racing_sessions: Dict[str, str] = {}

        # Como Postgres: tras una sentencia fallida todo falla hasta rollback()
        self.transactional = False
        self.aborted = False
        self.rollbacks = 0

    # ---------- helpers de seed ----------

    def _add(self, entity_type: EntityType, **fields) -> PassRecord:
        fields.setdefault("id", str(uuid.uuid4()))
        fields.setdefault("user_id", USER_ID)
        fields.setdefault("created_at", datetime.now(timezone.utc))
        record = PassRecord(entity_type=entity_type, **fields)
        self.records[(entity_type, record.id)] = record
        return dataclasses.replace(record)

    def add_ticket(self, **fields) -> PassRecord:
        fields.setdefault("status", "paid")
        fields.setdefault("amount", 2000)
        fields.setdefault("currency", "usd")
        return self._add(EntityType.TICKET, **fields)

    def add_subscription(self, **fields) -> PassRecord:
        fields.setdefault("status", "active")
        return self._add(EntityType.SUBSCRIPTION, **fields)

    def add_media_pass(self, **fields) -> PassRecord:
        fields.setdefault("status", "paid")
        return self._add(EntityType.MEDIA_PASS, **fields)

    def add_profile(self, user_id: str = USER_ID, **fields) -> ProfileRecord:
        profile = ProfileRecord(user_id=user_id, **fields)
        self.profiles[user_id] = profile
        return profile

    def stored(self, entity_type: EntityType, entity_id: str) -> PassRecord:
        return self.records[(entity_type, entity_id)]

    def tickets(self) -> List[PassRecord]:
        return [r for (t, _), r in self.records.items() if t == EntityType.TICKET]

    def _check_open(self):
        if self.aborted:
            raise RuntimeError("current transaction is aborted, commands ignored until end of transaction block")

    def _fail(self, message: str):
        if self.transactional:
            self.aborted = True
        raise RuntimeError(message)

    # ---------- TicketStore ----------

    async def get_entity(self, entity_type, entity_id):
        self._check_open()
        if self.fail_lookup:
            self._fail("connection reset")
        record = self.records.get((entity_type, entity_id))
        return dataclasses.replace(record) if record else None

    async def find_by_token(self, token):
        self._check_open()
        if self.fail_lookup:
            self._fail("connection reset")
        for entity_type in (EntityType.TICKET, EntityType.SUBSCRIPTION, EntityType.MEDIA_PASS):
            for (t, _), record in self.records.items():
                if t == entity_type and record.qr_code_token == token:
                    return dataclasses.replace(record)
        return None

    async def generate_token(self):
        self._check_open()
        self.generate_calls += 1
        if self.generate_calls in self.fail_generate_on_calls:
            self._fail("function generate_qr_token() failed")
        token = f"qr{self.generate_calls:04d}{uuid.uuid4().hex[:12]}"
        self.generated_tokens.append(token)
        return token

    async def assign_qr_token(self, entity_type, entity_id, token, qr_code_data):
        self._check_open()
        if entity_id in self.fail_assign_ids:
            self._fail("permission denied for table")

        record = self.records.get((entity_type, entity_id))
        if record is None:
            return False

        if entity_id in self.racing_tokens and not record.qr_code_token:
            # Otra petición gana la carrera justo antes de nuestro UPDATE
            record.qr_code_token = self.racing_tokens[entity_id]
            record.qr_code_data = '{"winner": true}'

        if record.qr_code_token:
            return False

        record.qr_code_token = token
        if entity_type != EntityType.MEDIA_PASS:
            record.qr_code_data = qr_code_data
        return True

    async def list_unresolved_paid_tickets(self):
        self._check_open()
        if self.fail_list:
            self._fail("relation \"tickets\" does not exist")
        pending = [
            dataclasses.replace(r) for r in self.tickets()
            if r.status == "paid" and not r.qr_code_token
        ]
        return sorted(pending, key=lambda r: r.created_at)

    async def get_profile(self, user_id):
        self._check_open()
        if self.fail_profiles:
            self._fail("profiles unavailable")
        return self.profiles.get(user_id)

    async def rollback(self):
        self.aborted = False
        self.rollbacks += 1

    async def find_user_id_by_email(self, email):
        for profile in self.profiles.values():
            if profile.email and profile.email.lower() == email.lower().strip():
                return profile.user_id
        return None

    async def get_user_roles(self, user_id):
        if self.fail_roles:
            raise RuntimeError("user_roles unavailable")
        return list(self.roles.get(user_id, []))

    async def create_ticket(self, user_id, amount, currency, stripe_session_id, status="pending", valid_until=None):
        self._check_open()
        if stripe_session_id in self.racing_sessions:
            # Otro verify inserta el ticket de la misma sesión justo antes que nosotros
            self.add_ticket(
                id=self.racing_sessions.pop(stripe_session_id),
                user_id=user_id,
                amount=amount,
                currency=currency,
                stripe_session_id=stripe_session_id,
                status="paid",
                valid_until=valid_until,
            )
        if stripe_session_id and any(r.stripe_session_id == stripe_session_id for r in self.tickets()):
            raise DuplicateRecordError(stripe_session_id)
        return self.add_ticket(
            user_id=user_id,
            amount=amount,
            currency=currency,
            stripe_session_id=stripe_session_id,
            status=status,
            valid_until=valid_until,
        )

    async def find_ticket_by_session(self, stripe_session_id):
        for record in self.tickets():
            if record.stripe_session_id == stripe_session_id:
                return dataclasses.replace(record)
        return None

    async def mark_ticket_paid(self, ticket_id, amount, currency, valid_until, payment_intent_id=None):
        record = self.records[(EntityType.TICKET, ticket_id)]
        record.status = "paid"
        record.amount = amount
        if currency:
            record.currency = currency
        record.valid_until = valid_until
        return dataclasses.replace(record)

    async def create_media_pass(
        self, user_id, stripe_session_id, pass_type, photographer_name, instagram_handle, amount,
        status="pending", valid_until=None,
    ):
        return self.add_media_pass(
            user_id=user_id,
            stripe_session_id=stripe_session_id,
            pass_type=pass_type,
            photographer_name=photographer_name,
            instagram_handle=instagram_handle,
            amount=amount,
            status=status,
            valid_until=valid_until,
        )

    async def find_media_pass_by_session(self, stripe_session_id):
        for (t, _), record in self.records.items():
            if t == EntityType.MEDIA_PASS and record.stripe_session_id == stripe_session_id:
                return dataclasses.replace(record)
        return None

    async def mark_media_pass_paid(self, media_pass_id, valid_until):
        record = self.records[(EntityType.MEDIA_PASS, media_pass_id)]
        record.status = "paid"
        record.valid_until = valid_until
        return dataclasses.replace(record)

    async def mark_ticket_used(self, ticket_id, used_by, used_at):
        record = self.records.get((EntityType.TICKET, ticket_id))
        if record is None or record.used_at is not None:
            return False
        record.used_at = used_at
        record.used_by = used_by
        return True

    async def delete_ticket(self, ticket_id):
        return self.records.pop((EntityType.TICKET, ticket_id), None) is not None


def in_days(days: float) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


@pytest.fixture
def store():
    return InMemoryTicketStore()


@pytest.fixture
def auth_user():
    return {"user_id": USER_ID, "email": USER_EMAIL}


@pytest.fixture
def client(store, auth_user):
    app.dependency_overrides[get_ticket_store] = lambda: store
    app.dependency_overrides[get_current_user] = lambda: auth_user
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client(store):
    """Sin override de get_current_user: la autenticación real exige header"""
    app.dependency_overrides[get_ticket_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()
