"""
Programmatic SEO page data.

Pages come from JSON files under the data directory, one file per category. Categories
backed by keyword mappings (compare, guides, scale, free) list their slugs from the
mappings and fall back to a generated page when the JSON has no entry for a slug.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from app.config import settings
from app.modules.pseo.keyword_mappings import (
    KEYWORD_PAGE_MAPPINGS,
    KeywordPageMapping,
    get_page_mapping_by_url,
)

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).parent / "data"

PSEO_CATEGORIES = [
    "tools",
    "formats",
    "compare",
    "use-cases",
    "guides",
    "alternatives",
    "scale",
    "free",
    "platforms",
    "content",
    "ai-features",
    "format-scale",
    "platform-format",
    "device-use",
]
MAPPING_CATEGORIES = {"compare", "guides", "scale", "free"}
OPTIONAL_CATEGORIES = {"content", "ai-features"}

Page = Dict[str, Any]


def _title_case(keyword: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in keyword.split(" "))


def generate_page_from_mapping(mapping: KeywordPageMapping, app_name: str) -> Page:
    """Fallback page for a mapped keyword that has no JSON content yet."""
    keyword = mapping.primary_keyword
    title = _title_case(keyword)
    faq = [
        {
            "question": f"What is {keyword}?",
            "answer": (
                f"{keyword[:1].upper() + keyword[1:]} is an AI-powered image enhancement tool that helps "
                "you improve image quality, resolution, and clarity instantly."
            ),
        },
        {
            "question": "Is it free to use?",
            "answer": (
                f"Yes! {app_name} offers 10 free credits to get started. Each image enhancement uses "
                "1 credit. For unlimited access, check our affordable premium plans."
            ),
        },
        {
            "question": "How long does processing take?",
            "answer": (
                "Most images are processed in 30-60 seconds. Processing time may vary based on image "
                "size and enhancement level."
            ),
        },
    ]
    return {
        "slug": mapping.slug,
        "title": title,
        "meta_title": f"{title} | {app_name}",
        "meta_description": (
            f"Professional {keyword}. {mapping.intent} solution with AI-powered technology. Try free."
        ),
        "h1": title,
        "intro": f"Transform your images with our {keyword} tool.",
        "primary_keyword": keyword,
        "secondary_keywords": list(mapping.secondary_keywords),
        "last_updated": datetime.now(timezone.utc).isoformat(),
        "category": mapping.category,
        "faq": faq,
    }


def _category_extras(category: str, slug: str, base: Page) -> Page:
    if category == "compare":
        return {
            "comparison_type": "vs" if "vs" in slug else "best-of",
            "products": [],
            "criteria": [],
            "related_comparisons": [],
        }
    if category == "guides":
        return {
            "guide_type": "how-to" if slug.startswith("how-to") else "explainer",
            "description": base["intro"],
            "difficulty": "beginner",
            "steps": [],
            "tips": [],
            "related_guides": [],
            "related_tools": [],
        }
    if category == "scale":
        return {
            "resolution": slug.replace("upscale-", "", 1).replace("-to-", " ", 1),
            "description": base["intro"],
            "use_cases": [],
            "benefits": [],
            "related_scales": [],
            "related_guides": [],
        }
    if category == "free":
        return {
            "tool_name": base["title"],
            "description": base["intro"],
            "features": [],
            "limitations": [],
            "upgrade_points": [],
            "related_free": [],
            "upgrade_path": "/pricing",
        }
    return {}


class PSEODataLoader:
    def __init__(self, data_dir: Optional[Path] = None, app_name: Optional[str] = None):
        self.data_dir = Path(data_dir or settings.pseo_data_dir or DEFAULT_DATA_DIR)
        self.app_name = app_name or settings.app_name
        self._files: Dict[str, List[Page]] = {}
        self._pages: Dict[Tuple[str, str], Page] = {}
        self._all_pages: Dict[str, List[Page]] = {}

    @staticmethod
    def is_valid_category(category: str) -> bool:
        return category in PSEO_CATEGORIES

    def clear_cache(self) -> None:
        self._files.clear()
        self._pages.clear()
        self._all_pages.clear()

    def _check_category(self, category: str) -> None:
        if not self.is_valid_category(category):
            raise ValueError(f"Unknown pSEO category: {category}")

    def _load_file(self, category: str) -> List[Page]:
        if category in self._files:
            return self._files[category]

        path = self.data_dir / f"{category}.json"
        pages: List[Page] = []
        if path.exists():
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            pages = data.get("pages", [])
            for page in pages:
                page.setdefault("category", category)
        elif category in OPTIONAL_CATEGORIES:
            logger.debug(f"No data file for optional pSEO category {category}")
        else:
            logger.warning(f"pSEO data file missing: {path}")

        self._files[category] = pages
        return pages

    def get_all_slugs(self, category: str) -> List[str]:
        self._check_category(category)
        if category in MAPPING_CATEGORIES:
            return [m.slug for m in KEYWORD_PAGE_MAPPINGS if m.canonical_url.startswith(f"/{category}/")]
        return [page["slug"] for page in self._load_file(category)]

    def get_page(self, category: str, slug: str) -> Optional[Page]:
        self._check_category(category)
        key = (category, slug)
        if key in self._pages:
            return self._pages[key]

        page = next((p for p in self._load_file(category) if p.get("slug") == slug), None)
        if page is None and category in MAPPING_CATEGORIES:
            mapping = get_page_mapping_by_url(f"/{category}/{slug}")
            if mapping:
                page = generate_page_from_mapping(mapping, self.app_name)
                page.update(_category_extras(category, slug, page))

        # Misses are not cached; slugs come from request paths
        if page is not None:
            self._pages[key] = page
        return page

    def get_all_pages(self, category: str) -> List[Page]:
        self._check_category(category)
        if category not in self._all_pages:
            if category in MAPPING_CATEGORIES:
                pages = [self.get_page(category, slug) for slug in self.get_all_slugs(category)]
                self._all_pages[category] = [p for p in pages if p is not None]
            else:
                self._all_pages[category] = list(self._load_file(category))
        return self._all_pages[category]

    def get_all_pseo_pages(self) -> List[Page]:
        pages: List[Page] = []
        for category in PSEO_CATEGORIES:
            pages.extend(self.get_all_pages(category))
        return pages

    def get_tools_for_blog_post(self, blog_slug: str) -> List[Page]:
        return [
            tool for tool in self._load_file("tools")
            if blog_slug in (tool.get("related_blog_posts") or [])
        ]


pseo_loader = PSEODataLoader()
