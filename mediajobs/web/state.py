"""
Process-wide service objects shared by the HTTP routes.
"""

import logging
from dataclasses import dataclass

from fastapi import Request

from mediajobs.core.config import AppConfig
from mediajobs.core.db_sqlite import Database
from mediajobs.core.job_queue import JobQueueManager
from mediajobs.core.job_status import JobStatusController, JobNotifier
from mediajobs.core.progress_tracker import ProgressTracker

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    config: AppConfig
    db: Database
    controller: JobStatusController
    tracker: ProgressTracker
    runner: JobQueueManager

    def close(self):
        self.runner.shutdown()
        self.db.close()


def build_services(config: AppConfig) -> AppServices:
    db = Database(config.db_path)
    notifier = JobNotifier()
    tracker = ProgressTracker()
    notifier.subscribe(tracker)
    controller = JobStatusController(db, notifier)
    runner = JobQueueManager(controller, config, tracker)
    logger.info("Job store at %s, workspaces under %s", config.db_path, config.tmp_root)
    return AppServices(config, db, controller, tracker, runner)


def get_services(request: Request) -> AppServices:
    return request.app.state.services
