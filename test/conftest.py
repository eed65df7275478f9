from typing import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.models.db import (
    Author,
    Ayah,
    AyahTranslation,
    Base,
    Book,
    Category,
    Hadith,
    HadithBook,
    HadithCollection,
    HadithTranslation,
    Page,
    QuranTranslation,
    Surah,
)

# Use in-memory SQLite for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(name="session")
async def session_fixture(test_engine) -> AsyncGenerator[AsyncSession, None]:
    async_session_maker = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session_maker() as session:
        yield session


@pytest_asyncio.fixture(name="client")
async def client_fixture(session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client with the database dependency pointed at the test session."""
    from app.database import get_session
    from app.main import app
    from app.middleware.rate_limit import limiter
    from app.services.stats import clear_stats_cache

    async def get_session_override() -> AsyncGenerator[AsyncSession, None]:
        yield session

    app.dependency_overrides[get_session] = get_session_override
    limiter.enabled = False
    clear_stats_cache()

    # ASGITransport does not run the lifespan, so no real database is touched
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://localhost") as client:
        yield client

    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def seeded(session: AsyncSession) -> AsyncSession:
    """A small corpus: two surahs, one hadith collection and two books."""
    fatiha = Surah(number=1, name_arabic="الفاتحة", name_english="Al-Fatiha", revelation_type="Meccan", ayah_count=2)
    baqara = Surah(number=2, name_arabic="البقرة", name_english="Al-Baqara", revelation_type="Medinan", ayah_count=1)
    session.add_all([fatiha, baqara])
    await session.flush()

    session.add_all([
        Ayah(surah_id=fatiha.id, ayah_number=1, text_uthmani="بِسْمِ ٱللَّهِ ٱلرَّحْمَٰنِ ٱلرَّحِيمِ",
             text_plain="بسم الله الرحمن الرحيم", juz_number=1, page_number=1),
        Ayah(surah_id=fatiha.id, ayah_number=2, text_uthmani="ٱلْحَمْدُ لِلَّهِ رَبِّ ٱلْعَٰلَمِينَ",
             text_plain="الحمد لله رب العالمين", juz_number=1, page_number=1),
        Ayah(surah_id=baqara.id, ayah_number=1, text_uthmani="الٓمٓ", text_plain="الم", juz_number=1, page_number=2),
    ])
    session.add_all([
        QuranTranslation(id="eng-ummmuhammad", language="en", name="Sahih International", source="alquran.cloud"),
        QuranTranslation(id="fra-muhammadhameedu", language="fr", name="Hamidullah"),
    ])
    session.add_all([
        AyahTranslation(surah_number=1, ayah_number=1, language="en", edition_id="eng-ummmuhammad",
                        text="In the name of Allah, the Entirely Merciful, the Especially Merciful."),
        AyahTranslation(surah_number=1, ayah_number=1, language="fr", edition_id="fra-muhammadhameedu",
                        text="Au nom d'Allah, le Tout Miséricordieux, le Très Miséricordieux."),
    ])

    bukhari = HadithCollection(slug="bukhari", name_english="Sahih al-Bukhari", name_arabic="صحيح البخاري")
    session.add(bukhari)
    await session.flush()
    revelation = HadithBook(collection_id=bukhari.id, book_number=1, name_english="Revelation", name_arabic="بدء الوحى")
    belief = HadithBook(collection_id=bukhari.id, book_number=2, name_english="Belief", name_arabic="الإيمان")
    session.add_all([revelation, belief])
    await session.flush()
    session.add_all([
        Hadith(book_id=revelation.id, hadith_number="1", text_arabic="إنما الأعمال بالنيات",
               text_plain="انما الاعمال بالنيات", grade="Sahih"),
        Hadith(book_id=revelation.id, hadith_number="2", text_arabic="أن الحارث بن هشام سأل",
               text_plain="ان الحارث بن هشام سال"),
        Hadith(book_id=belief.id, hadith_number="8", text_arabic="بني الإسلام على خمس",
               text_plain="بني الاسلام على خمس"),
    ])
    session.add(HadithTranslation(
        book_id=revelation.id, hadith_number="1", language="en",
        text="Actions are judged by intentions.", source="hadithapi",
    ))

    nawawi = Author(id="100", name_arabic="النووي", name_latin="al-Nawawi", death_date_hijri="676")
    ghazali = Author(id="200", name_arabic="الغزالي", name_latin="al-Ghazali", death_date_hijri="505")
    fiqh = Category(id=1, name_arabic="الفقه", name_english="Fiqh")
    session.add_all([nawawi, ghazali, fiqh])
    session.add_all([
        Book(id="10", title_arabic="رياض الصالحين", title_latin="Riyad al-Salihin", author_id="100",
             category_id=1, total_volumes=1, total_pages=2),
        Book(id="20", title_arabic="إحياء علوم الدين", title_latin="Ihya Ulum al-Din", author_id="200",
             total_volumes=4, total_pages=1),
    ])
    session.add_all([
        Page(book_id="10", page_number=1, volume_number=1, url_page_index="1",
             content_plain="باب الإخلاص", content_html="<p>باب الإخلاص</p>"),
        Page(book_id="10", page_number=2, volume_number=1, url_page_index="2",
             content_plain="باب التوبة", content_html="<p>باب التوبة</p>"),
    ])
    await session.commit()
    return session
