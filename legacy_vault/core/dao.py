"""
Repositories over the SQLite store.
Each store is bound to an explicit database path; nothing here is a process-wide singleton.
"""

import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from .db import get_db
from .config import DEFAULT_INACTIVITY_DAYS, AUDIT_LOG_LIMIT
from .errors import Conflict
from .schema import (
    AccessRequest,
    AuditAction,
    AuditLogEntry,
    Category,
    DependentRelationship,
    KnowledgeEntry,
    Permissions,
    RequestStatus,
    Role,
    User,
    UserStats,
)

PERMISSION_COLUMNS = [f"perm_{c.value}" for c in Category]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def _ts(value: Optional[datetime]) -> Optional[str]:
    # Fixed-width UTC text so ORDER BY on the column is chronological
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class _Store:
    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path

    def _connect(self):
        return get_db(self.db_path)


class UserStore(_Store):
    """Users as seen by the core: identity, role and activity fields."""

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            role=Role(row["role"]),
            last_activity_at=_parse_ts(row["last_activity_at"]),
            inactivity_days=row["inactivity_days"],
            is_inactive=bool(row["is_inactive"]),
            created_at=_parse_ts(row["created_at"]),
        )

    def create_user(self, name: str, email: str, role: Role,
                    inactivity_days: int = DEFAULT_INACTIVITY_DAYS,
                    last_activity_at: Optional[datetime] = None,
                    is_inactive: bool = False,
                    now: Optional[datetime] = None) -> User:
        """Insert a user. Used by the credential store and by seeding; role is fixed here."""
        now = now or utc_now()
        user = User(
            id=new_id(),
            name=name.strip(),
            email=email.strip().lower(),
            role=Role(role),
            last_activity_at=last_activity_at or now,
            inactivity_days=inactivity_days,
            is_inactive=is_inactive,
            created_at=now,
        )
        with self._connect() as conn:
            try:
                conn.execute(
                    """INSERT INTO users (id, name, email, role, last_activity_at, inactivity_days, is_inactive, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (user.id, user.name, user.email, user.role.value, _ts(user.last_activity_at),
                     user.inactivity_days, user.is_inactive, _ts(user.created_at))
                )
                conn.commit()
            except sqlite3.IntegrityError:
                raise Conflict(f"User with email '{user.email}' already exists", {"email": user.email})
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(row) if row else None

    def get_many(self, user_ids: Iterable[str]) -> Dict[str, User]:
        """Fetch several users at once, keyed by id. Missing ids are skipped."""
        ids = list({i for i in user_ids if i})
        if not ids:
            return {}
        placeholders = ",".join("?" for _ in ids)
        with self._connect() as conn:
            rows = conn.execute(f"SELECT * FROM users WHERE id IN ({placeholders})", ids).fetchall()
        return {row["id"]: self._row_to_user(row) for row in rows}

    def resolve_user_by_email(self, email: str, role: Optional[Role] = None) -> Optional[User]:
        email = (email or "").strip().lower()
        with self._connect() as conn:
            if role is None:
                row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
            else:
                row = conn.execute(
                    "SELECT * FROM users WHERE email = ? AND role = ?", (email, Role(role).value)
                ).fetchone()
        return self._row_to_user(row) if row else None

    def list_owners(self) -> List[User]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM users WHERE role = ? ORDER BY created_at", (Role.OWNER.value,)
            ).fetchall()
        return [self._row_to_user(row) for row in rows]

    def list_users(self) -> List[User]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY created_at DESC, rowid DESC").fetchall()
        return [self._row_to_user(row) for row in rows]

    def set_activity(self, user_id: str, last_activity_at: datetime) -> bool:
        """Record activity and clear the inactive flag in one write."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE users SET last_activity_at = ?, is_inactive = FALSE WHERE id = ?",
                (_ts(last_activity_at), user_id)
            )
            conn.commit()
            return cursor.rowcount > 0

    def set_inactive(self, user_id: str, is_inactive: bool) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE users SET is_inactive = ? WHERE id = ?", (is_inactive, user_id)
            )
            conn.commit()
            return cursor.rowcount > 0

    def update_settings(self, user_id: str, inactivity_days: Optional[int] = None,
                        name: Optional[str] = None) -> bool:
        updates, params = [], []
        if inactivity_days is not None:
            updates.append("inactivity_days = ?")
            params.append(inactivity_days)
        if name:
            updates.append("name = ?")
            params.append(name.strip())
        if not updates:
            return True
        params.append(user_id)
        with self._connect() as conn:
            cursor = conn.execute(f"UPDATE users SET {', '.join(updates)} WHERE id = ?", params)
            conn.commit()
            return cursor.rowcount > 0

    def get_stats(self) -> UserStats:
        with self._connect() as conn:
            row = conn.execute(
                """SELECT COUNT(*) AS total,
                          COALESCE(SUM(role = 'owner'), 0) AS owners,
                          COALESCE(SUM(role = 'dependent'), 0) AS dependents,
                          COALESCE(SUM(role = 'owner' AND is_inactive), 0) AS inactive_owners
                   FROM users"""
            ).fetchone()
        return UserStats(
            total=row["total"],
            owners=row["owners"],
            dependents=row["dependents"],
            inactive_owners=row["inactive_owners"],
        )


class RelationshipStore(_Store):
    """Owner <-> dependent links with permissions and the access grant."""

    @staticmethod
    def _row_to_relationship(row: sqlite3.Row) -> DependentRelationship:
        permissions = Permissions(**{c.value: bool(row[f"perm_{c.value}"]) for c in Category})
        return DependentRelationship(
            id=row["id"],
            owner_id=row["owner_id"],
            dependent_id=row["dependent_id"],
            permissions=permissions,
            access_granted=bool(row["access_granted"]),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    def create(self, owner_id: str, dependent_id: str, permissions: Permissions,
               now: Optional[datetime] = None) -> DependentRelationship:
        now = now or utc_now()
        relationship = DependentRelationship(
            id=new_id(),
            owner_id=owner_id,
            dependent_id=dependent_id,
            permissions=permissions,
            access_granted=False,
            created_at=now,
            updated_at=now,
        )
        flags = [getattr(permissions, c.value) for c in Category]
        with self._connect() as conn:
            try:
                conn.execute(
                    f"""INSERT INTO dependents (id, owner_id, dependent_id, {', '.join(PERMISSION_COLUMNS)},
                                                access_granted, created_at, updated_at)
                        VALUES (?, ?, ?, {', '.join('?' for _ in PERMISSION_COLUMNS)}, ?, ?, ?)""",
                    (relationship.id, owner_id, dependent_id, *flags, False, _ts(now), _ts(now))
                )
                conn.commit()
            except sqlite3.IntegrityError:
                raise Conflict("Dependent already added", {"owner_id": owner_id, "dependent_id": dependent_id})
        return relationship

    def get(self, relationship_id: str) -> Optional[DependentRelationship]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM dependents WHERE id = ?", (relationship_id,)).fetchone()
        return self._row_to_relationship(row) if row else None

    def find_pair(self, owner_id: str, dependent_id: str) -> Optional[DependentRelationship]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM dependents WHERE owner_id = ? AND dependent_id = ?",
                (owner_id, dependent_id)
            ).fetchone()
        return self._row_to_relationship(row) if row else None

    def update_permissions(self, relationship_id: str, permissions: Permissions,
                           now: Optional[datetime] = None) -> bool:
        assignments = ", ".join(f"{col} = ?" for col in PERMISSION_COLUMNS)
        flags = [getattr(permissions, c.value) for c in Category]
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE dependents SET {assignments}, updated_at = ? WHERE id = ?",
                (*flags, _ts(now or utc_now()), relationship_id)
            )
            conn.commit()
            return cursor.rowcount > 0

    def set_access_granted(self, owner_id: str, dependent_id: str, granted: bool,
                           now: Optional[datetime] = None) -> bool:
        """Flip the grant on the pair's relationship. False if no relationship exists."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE dependents SET access_granted = ?, updated_at = ? WHERE owner_id = ? AND dependent_id = ?",
                (granted, _ts(now or utc_now()), owner_id, dependent_id)
            )
            conn.commit()
            return cursor.rowcount > 0

    def delete(self, relationship_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM dependents WHERE id = ?", (relationship_id,))
            conn.commit()
            return cursor.rowcount > 0

    def list_for_owner(self, owner_id: str) -> List[DependentRelationship]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM dependents WHERE owner_id = ? ORDER BY created_at DESC, rowid DESC",
                (owner_id,)
            ).fetchall()
        return [self._row_to_relationship(row) for row in rows]

    def list_for_dependent(self, dependent_id: str) -> List[DependentRelationship]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM dependents WHERE dependent_id = ? ORDER BY created_at DESC, rowid DESC",
                (dependent_id,)
            ).fetchall()
        return [self._row_to_relationship(row) for row in rows]


class AccessRequestStore(_Store):
    """Access requests. Rows are never deleted."""

    @staticmethod
    def _row_to_request(row: sqlite3.Row) -> AccessRequest:
        return AccessRequest(
            id=row["id"],
            owner_id=row["owner_id"],
            dependent_id=row["dependent_id"],
            reason=row["reason"],
            status=RequestStatus(row["status"]),
            created_at=_parse_ts(row["created_at"]),
            admin_note=row["admin_note"] or "",
            processed_by=row["processed_by"],
            processed_at=_parse_ts(row["processed_at"]),
        )

    def create(self, owner_id: str, dependent_id: str, reason: str,
               now: Optional[datetime] = None) -> AccessRequest:
        request = AccessRequest(
            id=new_id(),
            owner_id=owner_id,
            dependent_id=dependent_id,
            reason=reason,
            status=RequestStatus.PENDING,
            created_at=now or utc_now(),
        )
        with self._connect() as conn:
            try:
                conn.execute(
                    """INSERT INTO access_requests (id, owner_id, dependent_id, reason, status, created_at)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (request.id, owner_id, dependent_id, reason, request.status.value, _ts(request.created_at))
                )
                conn.commit()
            except sqlite3.IntegrityError:
                # Partial unique index: another pending request won the race
                raise Conflict(
                    "You already have a pending request for this owner",
                    {"owner_id": owner_id, "dependent_id": dependent_id}
                )
        return request

    def get(self, request_id: str) -> Optional[AccessRequest]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM access_requests WHERE id = ?", (request_id,)).fetchone()
        return self._row_to_request(row) if row else None

    def find_pending(self, owner_id: str, dependent_id: str) -> Optional[AccessRequest]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM access_requests WHERE owner_id = ? AND dependent_id = ? AND status = ?",
                (owner_id, dependent_id, RequestStatus.PENDING.value)
            ).fetchone()
        return self._row_to_request(row) if row else None

    def mark_processed(self, request_id: str, status: RequestStatus, admin_note: str,
                       processed_by: str, processed_at: datetime) -> bool:
        """Move a pending request to a terminal status.

        The WHERE clause only matches pending rows, so a request processed
        concurrently by another admin is left untouched and False is returned.
        """
        with self._connect() as conn:
            cursor = conn.execute(
                """UPDATE access_requests
                   SET status = ?, admin_note = ?, processed_by = ?, processed_at = ?
                   WHERE id = ? AND status = ?""",
                (RequestStatus(status).value, admin_note, processed_by, _ts(processed_at),
                 request_id, RequestStatus.PENDING.value)
            )
            conn.commit()
            return cursor.rowcount > 0

    def list_all(self) -> List[AccessRequest]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM access_requests ORDER BY created_at DESC, rowid DESC"
            ).fetchall()
        return [self._row_to_request(row) for row in rows]

    def list_by_status(self, status: RequestStatus) -> List[AccessRequest]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM access_requests WHERE status = ? ORDER BY created_at DESC, rowid DESC",
                (RequestStatus(status).value,)
            ).fetchall()
        return [self._row_to_request(row) for row in rows]

    def list_for_dependent(self, dependent_id: str) -> List[AccessRequest]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM access_requests WHERE dependent_id = ? ORDER BY created_at DESC, rowid DESC",
                (dependent_id,)
            ).fetchall()
        return [self._row_to_request(row) for row in rows]


class KnowledgeEntryStore(_Store):
    """Read side of the owner's vault, plus the insert used by the entry CRUD collaborator."""

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> KnowledgeEntry:
        return KnowledgeEntry(
            id=row["id"],
            owner_id=row["owner_id"],
            category=Category(row["category"]),
            title=row["title"],
            content=row["content"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    def add_entry(self, owner_id: str, category: Category, title: str, content: str,
                  now: Optional[datetime] = None) -> KnowledgeEntry:
        now = now or utc_now()
        entry = KnowledgeEntry(
            id=new_id(),
            owner_id=owner_id,
            category=Category(category),
            title=title.strip(),
            content=content,
            created_at=now,
            updated_at=now,
        )
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO knowledge_entries (id, owner_id, category, title, content, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (entry.id, owner_id, entry.category.value, entry.title, content, _ts(now), _ts(now))
            )
            conn.commit()
        return entry

    def find_by_owner_and_categories(self, owner_id: str, categories: Iterable[Category]) -> List[KnowledgeEntry]:
        """Entries for the owner in the given categories, by category then most recently updated."""
        values = sorted({Category(c).value for c in categories})
        if not values:
            return []
        placeholders = ",".join("?" for _ in values)
        with self._connect() as conn:
            rows = conn.execute(
                f"""SELECT * FROM knowledge_entries
                    WHERE owner_id = ? AND category IN ({placeholders})
                    ORDER BY category ASC, updated_at DESC, rowid DESC""",
                (owner_id, *values)
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def count_by_category(self, owner_id: str) -> Dict[str, int]:
        """Per-category entry counts; every category is present."""
        counts = {c.value: 0 for c in Category}
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT category, COUNT(*) AS n FROM knowledge_entries WHERE owner_id = ? GROUP BY category",
                (owner_id,)
            ).fetchall()
        for row in rows:
            counts[row["category"]] = row["n"]
        return counts


class AuditLogStore(_Store):
    """Append-only audit log."""

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> AuditLogEntry:
        return AuditLogEntry(
            id=row["id"],
            owner_id=row["owner_id"],
            action=AuditAction(row["action"]),
            performed_by=row["performed_by"],
            details=row["details"] or "",
            created_at=_parse_ts(row["created_at"]),
            category=Category(row["category"]) if row["category"] else None,
        )

    def append(self, owner_id: str, action: AuditAction, performed_by: str,
               category: Optional[Category] = None, details: str = "",
               now: Optional[datetime] = None) -> AuditLogEntry:
        now = now or utc_now()
        action = AuditAction(action)
        category = Category(category) if category else None
        with self._connect() as conn:
            cursor = conn.execute(
                """INSERT INTO audit_log (owner_id, action, performed_by, category, details, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (owner_id, action.value, performed_by, category.value if category else None, details, _ts(now))
            )
            conn.commit()
            entry_id = cursor.lastrowid
        return AuditLogEntry(
            id=entry_id,
            owner_id=owner_id,
            action=action,
            performed_by=performed_by,
            details=details,
            created_at=now,
            category=category,
        )

    def list_for_owner(self, owner_id: str, limit: int = AUDIT_LOG_LIMIT) -> List[AuditLogEntry]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM audit_log WHERE owner_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
                (owner_id, limit)
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]
