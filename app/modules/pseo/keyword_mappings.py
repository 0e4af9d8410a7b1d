"""
Keyword to page mappings.

Each primary keyword has exactly one canonical page so pages do not compete for the
same search terms.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel


class KeywordPageMapping(BaseModel):
    primary_keyword: str
    secondary_keywords: List[str]
    canonical_url: str
    intent: Literal["Transactional", "Commercial", "Comparison", "Informational"]
    tier: int
    priority: Literal["P0", "P1", "P2"]

    @property
    def category(self) -> str:
        return self.canonical_url.split("/")[1]

    @property
    def slug(self) -> str:
        return self.canonical_url.split("/")[2]


def _mapping(primary, secondary, url, intent, tier, priority="P0") -> KeywordPageMapping:
    return KeywordPageMapping(
        primary_keyword=primary,
        secondary_keywords=secondary,
        canonical_url=url,
        intent=intent,
        tier=tier,
        priority=priority,
    )


KEYWORD_PAGE_MAPPINGS: List[KeywordPageMapping] = [
    # Tier 1
    _mapping("ai image upscaler",
             ["image upscaler", "ai upscale", "upscaler", "ai upscale image", "upscale image ai",
              "image upscaler ai", "upscale ai"],
             "/tools/ai-image-upscaler", "Transactional", 1),
    _mapping("ai photo enhancer",
             ["photo enhancer ai", "ai enhance photo", "photo ai enhancer", "enhance photo ai",
              "ai photo enhance", "photo enhancer online"],
             "/tools/ai-photo-enhancer", "Transactional", 1),
    _mapping("ai image enhancer",
             ["image enhancer ai", "ai enhance image", "enhance image ai", "image ai enhancer",
              "image enhancer online"],
             "/tools/ai-image-enhancer", "Transactional", 1),
    _mapping("photo quality enhancer",
             ["image quality enhancer", "picture quality enhancer", "photo quality enhancer online",
              "image quality enhancer online"],
             "/tools/photo-quality-enhancer", "Transactional", 1),
    _mapping("image clarity enhancer",
             ["photo clarity enhancer", "picture clarity enhancer", "enhance image clarity"],
             "/tools/image-clarity-enhancer", "Transactional", 1, "P1"),
    _mapping("picture quality enhancer",
             ["enhance picture quality", "picture enhancer online"],
             "/tools/picture-quality-enhancer", "Transactional", 1),

    # Free tools
    _mapping("free image upscaler",
             ["image upscaler free", "upscale image free", "free upscale image",
              "online image upscaler free", "image upscaler online free", "upscale image online"],
             "/free/free-image-upscaler", "Transactional", 2),
    _mapping("free photo enhancer",
             ["photo enhancer free", "photo enhancer online free", "free online photo enhancer",
              "pic enhancer online", "photo online enhancer"],
             "/free/free-photo-enhancer", "Transactional", 1),
    _mapping("free image enhancer",
             ["image enhancer free", "free online image enhancer", "online image enhancer free"],
             "/free/free-image-enhancer", "Transactional", 1),
    _mapping("free ai photo enhancer",
             ["ai photo enhancer free", "free ai image enhancer", "ai image enhancer free",
              "free ai upscaler", "ai upscaler free"],
             "/free/free-ai-photo-enhancer", "Transactional", 2),
    _mapping("free ai image upscaler",
             ["ai image upscaler free", "free ai upscale", "ai upscale image free"],
             "/free/free-ai-upscaler", "Transactional", 2),

    # Resolution targets
    _mapping("upscale to 4k",
             ["image upscaler 4k", "4k image upscaler", "ai image upscaler 4k", "upscale image to 4k",
              "4k upscaler"],
             "/scale/upscale-to-4k", "Commercial", 2),
    _mapping("upscale to hd",
             ["hd image upscaler", "hd photo enhancer", "upscale image to hd", "hd upscaler"],
             "/scale/upscale-to-hd", "Commercial", 2),

    # Comparisons
    _mapping("best ai upscaler",
             ["best ai image upscaler", "best image upscaler", "top ai upscalers", "best upscaler"],
             "/compare/best-ai-upscalers", "Comparison", 3),
    _mapping("pixelperfect vs imgupscaler",
             ["img upscaler com", "imgupscaler alternative", "imgupscaler vs pixelperfect"],
             "/compare/pixelperfect-vs-imgupscaler", "Comparison", 2),
    _mapping("pixelperfect vs clipdrop",
             ["clip drop image upscaler", "clipdrop alternative", "clipdrop vs pixelperfect"],
             "/compare/pixelperfect-vs-clipdrop", "Comparison", 3, "P1"),

    # Guides
    _mapping("how to upsize images",
             ["upsize an image", "upsize image", "image upsizing guide"],
             "/guides/how-to-upsize-images", "Informational", 1),
    _mapping("how to upscale images",
             ["upscale an image", "upscale image guide", "image upscaling tutorial"],
             "/guides/how-to-upscale-images", "Informational", 3),

    # Enlargers
    _mapping("ai image enlarger",
             ["image enlarger ai", "ai enlarge image", "enlarge image ai"],
             "/tools/ai-image-enlarger", "Transactional", 2),
    _mapping("image enlarger",
             ["photo enlarger", "picture enlarger", "image enlarger online", "photo enlarger online"],
             "/tools/image-enlarger", "Transactional", 2),
]


def get_page_mapping_by_url(url: str) -> Optional[KeywordPageMapping]:
    for mapping in KEYWORD_PAGE_MAPPINGS:
        if mapping.canonical_url == url:
            return mapping
    return None


def get_page_mapping_by_keyword(keyword: str) -> Optional[KeywordPageMapping]:
    """Match a primary or secondary keyword, case-insensitively."""
    keyword = keyword.lower()
    for mapping in KEYWORD_PAGE_MAPPINGS:
        if mapping.primary_keyword.lower() == keyword:
            return mapping
        if any(k.lower() == keyword for k in mapping.secondary_keywords):
            return mapping
    return None


def get_pages_by_category(category: str) -> List[KeywordPageMapping]:
    return [m for m in KEYWORD_PAGE_MAPPINGS if m.canonical_url.startswith(f"/{category}/")]


def get_p0_pages() -> List[KeywordPageMapping]:
    return [m for m in KEYWORD_PAGE_MAPPINGS if m.priority == "P0"]


def get_pages_by_tier(tier: int) -> List[KeywordPageMapping]:
    return [m for m in KEYWORD_PAGE_MAPPINGS if m.tier == tier]
