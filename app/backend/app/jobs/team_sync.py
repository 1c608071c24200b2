"""Batch entry point: resync every active project team against the org chart.

Meant for a scheduler (cron, k8s CronJob) after HR directory imports.
Exits non-zero when any project failed to sync.
"""

import logging
import sys

from app.core.config import get_settings
from app.core.logging_config import setup_logging
from app.db.session import SessionLocal
from app.services.team_sync_service import TeamSyncService

logger = logging.getLogger(__name__)


def main() -> int:
    setup_logging(get_settings().log_level)
    logger.info("Starting global team sync")

    db = SessionLocal()
    try:
        summary = TeamSyncService(db).sync_all_project_teams()
    finally:
        db.close()

    if summary.failed:
        logger.error("Team sync failed for %d projects: %s", len(summary.failed), ", ".join(map(str, summary.failed)))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
