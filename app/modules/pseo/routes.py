from fastapi import APIRouter, Depends, Request
from app.config import settings
from app.core.errors import AppError, ErrorCode, success_body
from app.core.rate_limit import limiter
from app.modules.pseo.loader import PSEO_CATEGORIES, PSEODataLoader, pseo_loader

router = APIRouter(prefix="/pseo", tags=["pseo"])


def get_pseo_loader() -> PSEODataLoader:
    return pseo_loader


def _require_category(loader: PSEODataLoader, category: str) -> None:
    if not loader.is_valid_category(category):
        raise AppError(ErrorCode.NOT_FOUND, f"Unknown category: {category}")


@router.get("/categories")
@limiter.limit(settings.public_rate_limit)
async def list_categories(request: Request, loader: PSEODataLoader = Depends(get_pseo_loader)):
    categories = [
        {"category": category, "page_count": len(loader.get_all_slugs(category))}
        for category in PSEO_CATEGORIES
    ]
    return success_body(categories)


@router.get("/pages")
@limiter.limit(settings.public_rate_limit)
async def list_all_pages(request: Request, loader: PSEODataLoader = Depends(get_pseo_loader)):
    """Every pSEO page across categories, for sitemap generation"""
    return success_body(loader.get_all_pseo_pages())


@router.get("/blog/{blog_slug}/tools")
@limiter.limit(settings.public_rate_limit)
async def tools_for_blog_post(
    request: Request,
    blog_slug: str,
    loader: PSEODataLoader = Depends(get_pseo_loader),
):
    return success_body(loader.get_tools_for_blog_post(blog_slug))


@router.get("/{category}")
@limiter.limit(settings.public_rate_limit)
async def list_category(
    request: Request,
    category: str,
    loader: PSEODataLoader = Depends(get_pseo_loader),
):
    _require_category(loader, category)
    return success_body({
        "category": category,
        "slugs": loader.get_all_slugs(category),
        "pages": loader.get_all_pages(category),
    })


@router.get("/{category}/{slug}")
@limiter.limit(settings.public_rate_limit)
async def get_page(
    request: Request,
    category: str,
    slug: str,
    loader: PSEODataLoader = Depends(get_pseo_loader),
):
    _require_category(loader, category)
    page = loader.get_page(category, slug)
    if page is None:
        raise AppError(ErrorCode.NOT_FOUND, f"Page not found: /{category}/{slug}")
    return success_body(page)
