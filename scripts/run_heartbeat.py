#!/usr/bin/env python3
"""
Run the heartbeat loop with the owner inactivity sweep registered.
Requires HEARTBEAT_ENABLED=true.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from legacy_vault.core.config import DB_PATH, get_sweep_interval, is_heartbeat_enabled
from legacy_vault.core.heartbeat import Heartbeat
from legacy_vault.core.services import build_services
from legacy_vault.util.logging import logger


def build_heartbeat(db_path: str = None) -> Heartbeat:
    """Heartbeat with the inactivity sweep registered against db_path."""
    services = build_services(db_path or DB_PATH)
    heartbeat = Heartbeat()
    heartbeat.register_task("inactivity_sweep", get_sweep_interval(), services.activity.sweep)
    return heartbeat


def main():
    """Main entry point for heartbeat script."""
    if not is_heartbeat_enabled():
        logger.error("Heartbeat requires HEARTBEAT_ENABLED=true")
        sys.exit(1)

    heartbeat = build_heartbeat()
    try:
        heartbeat.start()
    except KeyboardInterrupt:
        heartbeat.stop()
    except Exception as e:
        logger.error(f"Heartbeat crashed: {e}")
        heartbeat.stop()
        sys.exit(1)


if __name__ == "__main__":
    main()
