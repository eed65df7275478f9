from app.main import VERSION


async def test_health(client):
    response = await client.get("/api/health")
    assert response.json() == {"status": "ok", "version": VERSION}


async def test_stats(client, seeded):
    response = await client.get("/api/stats")

    assert response.status_code == 200
    assert response.json() == {
        "book_count": 2,
        "author_count": 2,
        "category_count": 1,
        "page_count": 2,
        "hadith_count": 3,
        "ayah_count": 3,
    }


async def test_stats_are_cached(client, seeded):
    from app.models.db import Category

    first = (await client.get("/api/stats")).json()
    seeded.add(Category(id=2, name_arabic="الحديث"))
    await seeded.commit()

    assert (await client.get("/api/stats")).json() == first


async def test_cors_preflight_allows_frontend(client):
    response = await client.options("/api/health", headers={
        "Origin": "http://localhost:3000",
        "Access-Control-Request-Method": "GET",
    })
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
