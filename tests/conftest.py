import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db_models import Contact, LinkPrecedence  # noqa: E402

EPOCH = datetime(2023, 4, 1, tzinfo=timezone.utc)


class InMemoryContactRepository:
    """Dict-backed ContactRepository. Each insert is one minute younger than the last."""

    def __init__(self):
        self.contacts: Dict[int, Contact] = {}
        self.next_id = 1
        self.calls: List[str] = []

    def add(self, **fields) -> Contact:
        """Seed a row directly, bypassing the resolver."""
        fields.setdefault("id", self.next_id)
        fields.setdefault("createdAt", EPOCH + timedelta(minutes=fields["id"]))
        contact = Contact(**fields)
        self.contacts[contact.id] = contact
        self.next_id = max(self.next_id, contact.id + 1)
        return contact

    def _live(self) -> List[Contact]:
        return sorted(
            (c for c in self.contacts.values() if c.deletedAt is None),
            key=lambda c: c.id,
        )

    def find_by_email_or_phone(self, email: Optional[str], phone: Optional[str]) -> List[Contact]:
        self.calls.append("find_by_email_or_phone")
        return [
            c
            for c in self._live()
            if (email is not None and c.email == email)
            or (phone is not None and c.phoneNumber == phone)
        ]

    def find_cluster_members(self, root_ids: Iterable[int]) -> List[Contact]:
        self.calls.append("find_cluster_members")
        ids = set(root_ids)
        return [c for c in self._live() if c.id in ids or c.linkedId in ids]

    def insert(self, email, phone, precedence, linked_id=None) -> Contact:
        self.calls.append("insert")
        return self.add(
            email=email,
            phoneNumber=phone,
            linkPrecedence=LinkPrecedence(precedence),
            linkedId=linked_id,
        )

    def demote_to_secondary(self, contact_id: int, new_linked_id: int) -> None:
        self.calls.append("demote_to_secondary")
        self.contacts[contact_id] = self.contacts[contact_id].model_copy(
            update={"linkPrecedence": LinkPrecedence.SECONDARY, "linkedId": new_linked_id}
        )

    def relink(self, contact_id: int, new_linked_id: int) -> None:
        self.calls.append("relink")
        self.contacts[contact_id] = self.contacts[contact_id].model_copy(
            update={"linkedId": new_linked_id}
        )


@pytest.fixture
def memory_repository():
    return InMemoryContactRepository()


@pytest.fixture
def database_path(tmp_path):
    return str(tmp_path / "contacts.db")
