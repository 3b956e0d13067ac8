from __future__ import annotations

"""Twice-daily knowledge-base article generation.

Jobs run on APScheduler's asyncio scheduler inside the API event loop. The
unattended path never propagates a failure; the on-demand path always does.
"""

import logging
import threading
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ..config import Settings, get_settings
from ..domain.models import Article
from ..observability.metrics import ARTICLE_JOBS
from .article_service import ArticleService, get_article_service


logger = logging.getLogger(__name__)
LOG = logging.getLogger("helpdesk.scheduler")

MORNING = "morning"
EVENING = "evening"


class ArticleScheduler:
    def __init__(
        self,
        service: ArticleService,
        settings: Optional[Settings] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
    ) -> None:
        self._service = service
        self._settings = settings or get_settings()
        self._scheduler = scheduler or AsyncIOScheduler(timezone=self._settings.scheduler_timezone or None)
        self._lock = threading.Lock()
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def job_ids(self) -> List[str]:
        return [job.id for job in self._scheduler.get_jobs()]

    def start(self) -> bool:
        """Register the cron jobs and start ticking. Returns False if already started.

        Must be called from within a running event loop.
        """

        with self._lock:
            if self._started:
                LOG.info("scheduler_already_started")
                return False
            tz = self._settings.scheduler_timezone or None
            for label, expr in ((MORNING, self._settings.morning_cron), (EVENING, self._settings.evening_cron)):
                self._scheduler.add_job(
                    self.run_job,
                    CronTrigger.from_crontab(expr, timezone=tz),
                    args=[label],
                    id=f"articles-{label}",
                    name=f"{label} article generation",
                    replace_existing=True,
                    coalesce=True,
                    max_instances=1,
                )
            self._scheduler.start()
            self._started = True
        LOG.info(
            "scheduler_started",
            extra={"morning": self._settings.morning_cron, "evening": self._settings.evening_cron},
        )
        return True

    def shutdown(self) -> None:
        with self._lock:
            if not self._started:
                return
            self._scheduler.shutdown(wait=False)
            self._started = False
        LOG.info("scheduler_stopped")

    async def run_job(self, label: str) -> Optional[Article]:
        """Unattended run: one article, failures logged and dropped until the next tick."""

        LOG.info("article_job_started", extra={"trigger": label})
        try:
            article = await self._service.generate()
        except Exception:
            ARTICLE_JOBS.labels(trigger=label, outcome="failed").inc()
            logger.exception("Scheduled %s article generation failed", label)
            return None
        ARTICLE_JOBS.labels(trigger=label, outcome="succeeded").inc()
        LOG.info("article_job_finished", extra={"trigger": label, "article_id": article.id})
        return article

    async def trigger_now(self) -> str:
        article = await self.run_job("manual")
        if article is None:
            return "Article generation failed; see server logs"
        return f"Article generated: {article.title}"

    async def generate_for_user(self, user_id: str, category: Optional[str] = None) -> Article:
        try:
            article = await self._service.generate(user_id=user_id, category=category)
        except Exception:
            ARTICLE_JOBS.labels(trigger="on_demand", outcome="failed").inc()
            raise
        ARTICLE_JOBS.labels(trigger="on_demand", outcome="succeeded").inc()
        return article


def build_article_scheduler(settings: Optional[Settings] = None) -> ArticleScheduler:
    return ArticleScheduler(get_article_service(), settings)
