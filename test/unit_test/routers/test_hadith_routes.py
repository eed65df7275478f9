async def test_list_collections_is_cacheable(client, seeded):
    response = await client.get("/api/hadith/collections")

    assert response.status_code == 200
    assert [c["slug"] for c in response.json()] == ["bukhari"]
    assert "max-age=86400" in response.headers["cache-control"]


async def test_get_collection_lists_books(client, seeded):
    data = (await client.get("/api/hadith/collections/bukhari")).json()
    assert sorted(b["name_english"] for b in data["books"]) == ["Belief", "Revelation"]


async def test_unknown_collection(client, seeded):
    response = await client.get("/api/hadith/collections/unknown")
    assert response.status_code == 404


async def test_collection_book_pages_hadiths(client, seeded):
    response = await client.get("/api/hadith/collections/bukhari/books/1", params={"limit": 1})

    data = response.json()
    assert data["collection"]["slug"] == "bukhari"
    assert data["book"]["name_english"] == "Revelation"
    assert data["total"] == 2
    assert [h["hadith_number"] for h in data["hadiths"]] == ["1"]
    assert data["hadiths"][0]["source_url"] == "https://sunnah.com/bukhari:1"


async def test_missing_book(client, seeded):
    response = await client.get("/api/hadith/collections/bukhari/books/9")
    assert response.status_code == 404
    assert response.json()["detail"] == "Book not found"


async def test_get_hadith(client, seeded):
    data = (await client.get("/api/hadith/collections/bukhari/8")).json()

    assert data["book_number"] == 2
    assert data["text_arabic"] == "بني الإسلام على خمس"


async def test_missing_hadith(client, seeded):
    response = await client.get("/api/hadith/collections/bukhari/7000")
    assert response.status_code == 404
