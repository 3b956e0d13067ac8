"""
Generate and store one knowledge-base article from the command line.

Uses the same ArticleService as the scheduled jobs, so the configured store
(DB_MODE) and model provider keys from .env apply.

Run:
  python scripts/generate_article.py [--category Security] [--user USER_ID]
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Ensure repository root is on sys.path so 'src' package can be imported when
# executing this script from the scripts/ directory.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from src.helpdesk.services.article_service import get_article_service  # noqa: E402

logger = logging.getLogger("helpdesk.scripts.generate_article")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate one IT support article")
    parser.add_argument("--category", default=None, help="Override the randomly chosen category")
    parser.add_argument("--user", dest="user_id", default=None, help="Tailor the article to this user's device")
    return parser.parse_args(argv)


async def _generate(category: str | None, user_id: str | None) -> str:
    article = await get_article_service().generate(user_id=user_id, category=category)
    return f"{article.id}\t{article.title}"


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    logging.basicConfig(level=logging.INFO)
    args = parse_args(argv)
    try:
        line = asyncio.run(_generate(args.category, args.user_id))
    except Exception:
        logger.exception("Article generation failed")
        return 1
    print(line)
    return 0


if __name__ == "__main__":
    sys.exit(main())
