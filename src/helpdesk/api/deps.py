from __future__ import annotations

from fastapi import Request

from ..services.scheduler import ArticleScheduler, build_article_scheduler


def get_scheduler(request: Request) -> ArticleScheduler:
    """The app-owned scheduler; created on first use when the lifespan did not run."""

    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        scheduler = build_article_scheduler()
        request.app.state.scheduler = scheduler
    return scheduler
