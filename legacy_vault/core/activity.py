"""
Account activity tracking and the owner inactivity sweep.

An owner is inactive once the whole days elapsed since their last activity
reach their own inactivity threshold. Elapsed days use ceiling division on the
millisecond difference, so any non-zero gap up to 24h already counts as one day.

touch() and sweep() are plain field writes on a single user row; when they
interleave the last write wins. touch() always clears the flag, so a stale
sweep result is superseded by the next activity signal.
"""

from datetime import datetime
from typing import Callable, List, Optional

from .audit import AuditTrail
from .config import MIN_INACTIVITY_DAYS, MAX_INACTIVITY_DAYS, is_valid_inactivity_days
from .dao import UserStore, utc_now
from .errors import Forbidden, NotFound, ValidationError
from .schema import AuditAction, InactivityTransition, Role, User
from ..util.logging import logger

MS_PER_DAY = 24 * 60 * 60 * 1000


def elapsed_days(last_activity_at: datetime, now: datetime) -> int:
    """Whole days between two instants, rounded up."""
    delta = abs(now - last_activity_at)
    elapsed_ms = delta.days * MS_PER_DAY + delta.seconds * 1000 + delta.microseconds // 1000
    return -(-elapsed_ms // MS_PER_DAY)


class ActivityTracker:
    """Owns last_activity_at / is_inactive / inactivity_days on user accounts."""

    def __init__(self, users: UserStore, audit: AuditTrail, clock: Callable[[], datetime] = utc_now):
        self.users = users
        self.audit = audit
        self.clock = clock

    def touch(self, user_id: str) -> User:
        """Record activity for a user (login or heartbeat) and mark them active."""
        now = self.clock()
        if not self.users.set_activity(user_id, now):
            raise NotFound("User not found", {"user_id": user_id})
        return self.users.get_user(user_id)

    def sweep(self) -> List[InactivityTransition]:
        """Recompute is_inactive for every owner, persisting only changes."""
        now = self.clock()
        owners = self.users.list_owners()
        transitions = []

        for owner in owners:
            elapsed = elapsed_days(owner.last_activity_at, now)
            inactive = elapsed >= owner.inactivity_days
            if inactive == owner.is_inactive:
                continue

            if not self.users.set_inactive(owner.id, inactive):
                # Row vanished between list and update
                continue

            transition = InactivityTransition(
                user_id=owner.id,
                email=owner.email,
                is_inactive=inactive,
                elapsed_days=elapsed,
                inactivity_days=owner.inactivity_days,
            )
            transitions.append(transition)
            logger.log_inactivity_transition(
                owner.id, owner.email, inactive, elapsed, owner.inactivity_days
            )

        logger.log_sweep_summary(len(owners), len(transitions))
        return transitions

    def update_settings(self, owner_id: str, inactivity_days: Optional[int] = None,
                        name: Optional[str] = None) -> User:
        """Owner-settable account settings: inactivity threshold and display name."""
        user = self.users.get_user(owner_id)
        if not user:
            raise NotFound("User not found", {"user_id": owner_id})
        if user.role != Role.OWNER:
            raise Forbidden("Only owners can change inactivity settings", {"role": user.role.value})

        if inactivity_days is not None and not is_valid_inactivity_days(inactivity_days):
            raise ValidationError(
                f"Inactivity days must be between {MIN_INACTIVITY_DAYS} and {MAX_INACTIVITY_DAYS}",
                {"inactivity_days": inactivity_days}
            )

        self.users.update_settings(owner_id, inactivity_days=inactivity_days, name=name)

        self.audit.record(
            owner_id=owner_id,
            action=AuditAction.SETTINGS_UPDATED,
            performed_by=owner_id,
            details="Settings updated",
        )
        return self.users.get_user(owner_id)
