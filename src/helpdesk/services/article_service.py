from __future__ import annotations

"""Knowledge-base article generation and browsing.

Articles are only ever written here, by the scheduler or an on-demand
request; nothing edits them afterwards.
"""

import logging
import math
import random
import re
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from ..domain.errors import GenerationError
from ..domain.models import Article, Pagination, from_record
from ..infrastructure.record_store import RecordStore, get_record_store
from .device_context import DeviceDirectory, DeviceInfo, UNKNOWN_DEVICE, get_device_directory
from .text_generator import TextGenerator, get_text_generator


logger = logging.getLogger(__name__)

ARTICLES = "articles"

TOPICS: Tuple[str, ...] = (
    "Resetting a forgotten account password",
    "Fixing slow Wi-Fi connections",
    "Backing up important files",
    "Recognising and reporting phishing emails",
    "Freeing up disk space",
    "Troubleshooting printer connection problems",
    "Setting up multi-factor authentication",
    "Keeping your operating system up to date",
    "Connecting to the company VPN",
    "Dealing with a laptop that will not boot",
    "Extending laptop battery life",
    "Securing your home network router",
)

CATEGORIES: Tuple[str, ...] = (
    "Security",
    "Networking",
    "Hardware",
    "Software",
    "Troubleshooting",
    "Productivity",
)

_TITLE_LINE = re.compile(r"^\s*(?:#+\s*)?(?:\*\*)?\s*title\s*:\s*(?:\*\*)?\s*(.+?)\s*(?:\*\*)?\s*$", re.IGNORECASE)


def build_article_prompt(topic: str, category: str, device: Optional[DeviceInfo] = None) -> str:
    lines = [
        "You are an experienced IT support specialist writing for a company knowledge base.",
        f"Write an article about: {topic}",
        f"Category: {category}",
        "",
        "Requirements:",
        "- Friendly, clear and professional tone for non-technical readers",
        "- Length between 800 and 1200 words",
        "- Structure: short introduction, numbered step-by-step instructions,"
        " a troubleshooting section for common problems, and a brief conclusion",
        "- Use Markdown headings and lists",
    ]
    if device and device != UNKNOWN_DEVICE:
        lines.append(f"- Tailor the instructions to a {device.brand} {device.model} where relevant")
    lines.extend(
        [
            "",
            "Start your answer with a single line of the form 'Title: <article title>',"
            " followed by a blank line and then the article body.",
        ]
    )
    return "\n".join(lines)


def parse_article(text: str, fallback_title: str) -> Tuple[str, str]:
    """Split generated text into (title, content)."""

    lines = (text or "").strip().splitlines()
    if lines:
        match = _TITLE_LINE.match(lines[0])
        if match:
            content = "\n".join(lines[1:]).strip()
            return match.group(1).strip().strip('"'), content
        heading = lines[0].strip()
        if heading.startswith("#"):
            return heading.lstrip("#").strip(), "\n".join(lines[1:]).strip()
    return fallback_title, (text or "").strip()


class ArticleService:
    def __init__(
        self,
        store: RecordStore,
        generator: TextGenerator,
        devices: DeviceDirectory,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._store = store
        self._generator = generator
        self._devices = devices
        self._rng = rng or random.Random()

    def pick_subject(self) -> Tuple[str, str]:
        return self._rng.choice(TOPICS), self._rng.choice(CATEGORIES)

    async def generate(self, user_id: Optional[str] = None, category: Optional[str] = None) -> Article:
        """Generate one article and persist it; failures propagate to the caller."""

        topic, picked_category = self.pick_subject()
        category = category or picked_category
        device = await self._devices.get(user_id) if user_id else None
        prompt = build_article_prompt(topic, category, device)
        text = await self._generator.generate(prompt, purpose="article")
        title, content = parse_article(text, fallback_title=topic)
        if not content:
            raise GenerationError("Generated article has no content")
        now = datetime.now(timezone.utc)
        doc = await self._store.insert(
            ARTICLES,
            {
                "title": title,
                "content": content,
                "category": category,
                "user_id": user_id,
                "created_at": now,
                "updated_at": now,
            },
        )
        logger.info("Article %s saved (category=%s, user=%s)", doc["id"], category, user_id or "-")
        return from_record(Article, doc)

    async def list(self, category: Optional[str] = None, page: int = 1, limit: int = 10) -> Tuple[List[Article], Pagination]:
        page = max(1, page)
        limit = max(1, limit)
        filters = {"category": category} if category else None
        rows = await self._store.find(ARTICLES, filters, sort=[("created_at", -1)], limit=limit, skip=(page - 1) * limit)
        total = await self._store.count(ARTICLES, filters)
        pagination = Pagination(total=total, page=page, limit=limit, pages=math.ceil(total / limit))
        return [from_record(Article, row) for row in rows], pagination

    async def get(self, article_id: str) -> Optional[Article]:
        doc = await self._store.find_one(ARTICLES, {"id": article_id})
        return from_record(Article, doc) if doc else None

    async def categories(self) -> List[str]:
        return sorted(await self._store.distinct(ARTICLES, "category"))


def get_article_service() -> ArticleService:
    return ArticleService(get_record_store(), get_text_generator(), get_device_directory())
