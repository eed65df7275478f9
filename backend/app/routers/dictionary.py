from fastapi import APIRouter, Depends, HTTPException, Path, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.models.schemas import LookupResponse, ResolveResponse, RootFamilyResponse, SourceListResponse
from app.services import dictionary
from app.services.arabic_text import ARABIC_LETTER_RE, normalize_arabic
from app.services.source_urls import SOURCES

router = APIRouter(prefix="/dictionary", tags=["dictionary"])

CACHE_CONTROL = "public, max-age=3600"

WordPath = Path(..., min_length=1, max_length=100)


def _require_arabic(word: str) -> None:
    if not ARABIC_LETTER_RE.search(normalize_arabic(word)):
        raise HTTPException(status_code=400, detail="Word must contain Arabic letters")


@router.get("/lookup/{word}", response_model=LookupResponse)
async def lookup(response: Response, word: str = WordPath, session: AsyncSession = Depends(get_session)):
    """Look up a word, falling back from exact headwords to its resolved root."""
    _require_arabic(word)
    result = await dictionary.lookup_word(session, word)
    response.headers["Cache-Control"] = CACHE_CONTROL
    return {**result, "sources": SOURCES["turath"]}


@router.get("/resolve/{word}", response_model=ResolveResponse)
async def resolve(response: Response, word: str = WordPath, session: AsyncSession = Depends(get_session)):
    _require_arabic(word)
    result = await dictionary.resolve_word(session, word)
    response.headers["Cache-Control"] = CACHE_CONTROL
    return result


@router.get("/root/{root}", response_model=RootFamilyResponse)
async def root_family(
    response: Response,
    root: str = Path(..., min_length=1, max_length=20),
    session: AsyncSession = Depends(get_session),
):
    """Derived forms and dictionary entries for an Arabic root."""
    result = await dictionary.root_family(session, root)
    response.headers["Cache-Control"] = CACHE_CONTROL
    return {**result, "sources": SOURCES["turath"]}


@router.get("/sources", response_model=SourceListResponse)
async def list_sources(response: Response, session: AsyncSession = Depends(get_session)):
    sources = await dictionary.list_sources(session)
    response.headers["Cache-Control"] = CACHE_CONTROL
    return {"sources": sources, "attribution": SOURCES["turath"]}
