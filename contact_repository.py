import sqlite3
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Protocol

from db_models import Contact, LinkPrecedence


class ContactRepository(Protocol):
    """Persistence boundary used by the resolver inside one transaction."""

    def find_by_email_or_phone(self, email: Optional[str], phone: Optional[str]) -> List[Contact]:
        """Contacts whose email or phone number equals the given value. Absent values never match."""
        ...

    def find_cluster_members(self, root_ids: Iterable[int]) -> List[Contact]:
        """Contacts whose id or linkedId is one of root_ids, ordered by id."""
        ...

    def insert(
        self,
        email: Optional[str],
        phone: Optional[str],
        precedence: LinkPrecedence,
        linked_id: Optional[int] = None,
    ) -> Contact: ...

    def demote_to_secondary(self, contact_id: int, new_linked_id: int) -> None: ...

    def relink(self, contact_id: int, new_linked_id: int) -> None: ...


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SqliteContactRepository:
    """ContactRepository over a connection that already has a transaction open."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def _fetch(self, query: str, params: tuple) -> List[Contact]:
        cursor = self.conn.execute(query, params)
        return [Contact(**dict(row)) for row in cursor.fetchall()]

    def get(self, contact_id: int) -> Optional[Contact]:
        rows = self._fetch("SELECT * FROM Contact WHERE id = ? AND deletedAt IS NULL", (contact_id,))
        return rows[0] if rows else None

    def find_by_email_or_phone(self, email: Optional[str], phone: Optional[str]) -> List[Contact]:
        # "= NULL" is never true, so an absent field matches nothing
        return self._fetch(
            """
            SELECT * FROM Contact
            WHERE deletedAt IS NULL
            AND (email = ? OR phoneNumber = ?)
            ORDER BY id ASC
            """,
            (email, phone),
        )

    def find_cluster_members(self, root_ids: Iterable[int]) -> List[Contact]:
        ids = sorted(set(root_ids))
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        return self._fetch(
            f"""
            SELECT * FROM Contact
            WHERE deletedAt IS NULL
            AND (id IN ({placeholders}) OR linkedId IN ({placeholders}))
            ORDER BY id ASC
            """,
            tuple(ids) + tuple(ids),
        )

    def insert(
        self,
        email: Optional[str],
        phone: Optional[str],
        precedence: LinkPrecedence,
        linked_id: Optional[int] = None,
    ) -> Contact:
        now = _now()
        cursor = self.conn.execute(
            """
            INSERT INTO Contact (phoneNumber, email, linkedId, linkPrecedence, createdAt, updatedAt)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (phone, email, linked_id, LinkPrecedence(precedence).value, now, now),
        )
        return self.get(cursor.lastrowid)

    def demote_to_secondary(self, contact_id: int, new_linked_id: int) -> None:
        self.conn.execute(
            """
            UPDATE Contact
            SET linkedId = ?, linkPrecedence = ?, updatedAt = ?
            WHERE id = ?
            """,
            (new_linked_id, LinkPrecedence.SECONDARY.value, _now(), contact_id),
        )

    def relink(self, contact_id: int, new_linked_id: int) -> None:
        self.conn.execute(
            "UPDATE Contact SET linkedId = ?, updatedAt = ? WHERE id = ?",
            (new_linked_id, _now(), contact_id),
        )
