from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...domain.models import Article, ArticlePage, ArticleRequest
from ...security.auth import Principal
from ...security.rbac import require_admin
from ...services.article_service import ArticleService, get_article_service
from ...services.scheduler import ArticleScheduler
from ..deps import get_scheduler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["articles"])


@router.get("/articles", response_model=ArticlePage)
async def list_articles(
    category: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    articles: ArticleService = Depends(get_article_service),
) -> ArticlePage:
    data, pagination = await articles.list(category=category, page=page, limit=limit)
    return ArticlePage(data=data, pagination=pagination)


@router.get("/articles/categories", response_model=List[str])
async def list_categories(articles: ArticleService = Depends(get_article_service)) -> List[str]:
    return await articles.categories()


@router.get("/articles/{article_id}", response_model=Article)
async def get_article(article_id: str, articles: ArticleService = Depends(get_article_service)) -> Article:
    article = await articles.get(article_id)
    if article is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Article not found")
    return article


@router.post("/articles/user-specific", response_model=Article, status_code=status.HTTP_201_CREATED)
async def generate_user_article(
    req: ArticleRequest,
    scheduler: ArticleScheduler = Depends(get_scheduler),
) -> Article:
    try:
        return await scheduler.generate_for_user(req.user_id, req.category)
    except Exception:
        logger.exception("Error generating user-specific article for %s", req.user_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to generate article")


@router.post("/generate-article", response_model=Article, status_code=status.HTTP_201_CREATED)
async def generate_article(
    _admin: Principal = Depends(require_admin),
    articles: ArticleService = Depends(get_article_service),
) -> Article:
    try:
        return await articles.generate()
    except Exception:
        logger.exception("Error generating article")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to generate article")


@router.post("/scheduler/run")
async def run_scheduler(
    _admin: Principal = Depends(require_admin),
    scheduler: ArticleScheduler = Depends(get_scheduler),
) -> dict:
    return {"message": await scheduler.trigger_now()}


@router.get("/init-scheduler")
async def init_scheduler(
    _admin: Principal = Depends(require_admin),
    scheduler: ArticleScheduler = Depends(get_scheduler),
) -> dict:
    newly_started = scheduler.start()
    return {
        "message": "Scheduler initialized successfully" if newly_started else "Scheduler already running",
        "jobs": scheduler.job_ids(),
    }
