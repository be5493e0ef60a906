"""
Wiring for the vault core: one set of stores and components bound to one database.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .access import AccessRequestWorkflow
from .activity import ActivityTracker
from .audit import AuditTrail
from .config import DB_PATH
from .dao import (
    AccessRequestStore,
    AuditLogStore,
    KnowledgeEntryStore,
    RelationshipStore,
    UserStore,
    utc_now,
)
from .db import init_db
from .registry import DependentRegistry
from .vault import VaultGate


@dataclass
class Services:
    users: UserStore
    relationships: RelationshipStore
    requests: AccessRequestStore
    entries: KnowledgeEntryStore
    audit: AuditTrail
    activity: ActivityTracker
    registry: DependentRegistry
    access: AccessRequestWorkflow
    vault: VaultGate


def build_services(db_path: Optional[str] = None,
                   clock: Optional[Callable[[], datetime]] = None) -> Services:
    """Initialize the schema at db_path and return wired components."""
    db_path = db_path or DB_PATH
    clock = clock or utc_now
    init_db(db_path)

    users = UserStore(db_path)
    relationships = RelationshipStore(db_path)
    requests = AccessRequestStore(db_path)
    entries = KnowledgeEntryStore(db_path)
    audit = AuditTrail(AuditLogStore(db_path), users=users, clock=clock)

    return Services(
        users=users,
        relationships=relationships,
        requests=requests,
        entries=entries,
        audit=audit,
        activity=ActivityTracker(users, audit, clock=clock),
        registry=DependentRegistry(users, relationships, audit, clock=clock),
        access=AccessRequestWorkflow(users, relationships, requests, audit, clock=clock),
        vault=VaultGate(relationships, entries, audit),
    )
