"""
Operational logging for the vault core.
Structured one-line records for sweeps, workflow transitions and audit sink failures.
This is not the audit trail; audit entries are persisted by core.audit.
"""

import logging
from typing import Any, Dict, List

from ..core.config import LOG_LEVEL


class StructuredLogger:
    """Structured logger for access-control operations."""

    def __init__(self, name: str = "legacy_vault"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.info(message)

    def log_heartbeat_task(self, task_name: str, start_time: float, end_time: float, status: str = "success", details: Dict[str, Any] = None):
        """Log heartbeat task execution."""
        duration_ms = round((end_time - start_time) * 1000, 2)
        log_details = {"duration_ms": duration_ms}
        if details:
            log_details.update(details)
        elif status == "success":
            log_details["message"] = f"Heartbeat task '{task_name}' completed in {duration_ms}ms"
        elif status == "failed":
            log_details["message"] = f"Heartbeat task '{task_name}' failed after {duration_ms}ms"

        self.log_operation(f"heartbeat.{task_name}", status, log_details)

    def log_inactivity_transition(self, user_id: str, email: str, is_inactive: bool, elapsed_days: int, inactivity_days: int):
        """Log an owner flipping between active and inactive."""
        log_details = {
            "user_id": user_id,
            "email": email,
            "elapsed_days": elapsed_days,
            "inactivity_days": inactivity_days
        }
        self.log_operation("activity.transition", "inactive" if is_inactive else "active", log_details)

    def log_sweep_summary(self, owners_checked: int, transitions: int):
        """Log the outcome of one inactivity sweep."""
        self.log_operation("activity.sweep", "success", {
            "owners_checked": owners_checked,
            "transitions": transitions
        })

    def log_relationship_change(self, change: str, owner_id: str, relationship_id: str, dependent_id: str = None):
        """Log dependent registry mutations."""
        log_details = {"owner_id": owner_id, "relationship_id": relationship_id}
        if dependent_id:
            log_details["dependent_id"] = dependent_id
        self.log_operation(f"registry.{change}", "success", log_details)

    def log_access_request(self, request_id: str, owner_id: str, dependent_id: str):
        """Log access request creation."""
        log_details = {
            "request_id": request_id,
            "owner_id": owner_id,
            "dependent_id": dependent_id
        }
        self.log_operation("access.request_created", "pending", log_details)

    def log_access_decision(self, request_id: str, decision: str, admin_id: str, note: str = "", granted: bool = False):
        """Log an admin decision on an access request."""
        log_details = {
            "request_id": request_id,
            "admin_id": admin_id,
            "note": note[:100] if note else "",  # Limit note length
            "access_granted": granted
        }
        self.log_operation("access.decision", decision, log_details)

    def log_vault_view(self, owner_id: str, dependent_id: str, categories: List[str], entry_count: int):
        """Log a dependent reading an owner's vault."""
        self.log_operation("vault.view", "allowed", {
            "owner_id": owner_id,
            "dependent_id": dependent_id,
            "categories": categories,
            "entry_count": entry_count
        })

    def log_vault_denied(self, owner_id: str, dependent_id: str, reason: str):
        """Log a refused vault read."""
        self.log_operation("vault.view", "denied", {
            "owner_id": owner_id,
            "dependent_id": dependent_id,
            "reason": reason
        })

    def log_audit_failure(self, action: str, owner_id: str, error: Exception):
        """Log an audit sink write that did not go through."""
        self.logger.error(
            f"Operation: audit.record, Status: failed, Details: "
            f"{{'action': '{action}', 'owner_id': '{owner_id}', 'error': '{str(error)[:200]}'}}"
        )

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()


def sanitize_payload(payload: Any, max_length: int = 100) -> Any:
    """Trim long strings in a payload before it goes to a log line or audit detail."""
    if isinstance(payload, dict):
        return {k: sanitize_payload(v, max_length) for k, v in payload.items()}
    elif isinstance(payload, str):
        return payload[:max_length] + "..." if len(payload) > max_length else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, max_length) for item in payload]
    else:
        return payload
