import pytest
from sqlalchemy import select, func

from classifieds.models.listing import Listing


@pytest.mark.asyncio
async def test_post_listing_applies_defaults(client, signed_in, db_session):
    alice_id, headers = signed_in["alice"]

    r = await client.post(
        "/v1/listings",
        headers=headers,
        json={"title": "  Honda CD 70  ", "price": "85000", "category": "Motorcycles"},
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["id"].startswith("lst_")
    assert body["title"] == "Honda CD 70"
    assert body["price"] == 85000
    assert body["price_display"] == "Rs 85,000"
    assert body["location"] == "Unknown"
    assert body["image_url"].startswith("https://placehold.co/")
    assert body["owner_id"] == alice_id
    assert body["is_owner"] is True
    assert body["is_saved"] is False

    count = (await db_session.execute(select(func.count()).select_from(Listing))).scalar_one()
    assert count == 1


@pytest.mark.asyncio
async def test_post_listing_requires_session(client):
    r = await client.post("/v1/listings", json={"title": "x", "price": 1, "category": "Books"})
    assert r.status_code == 401

    r = await client.post(
        "/v1/listings",
        headers={"X-Session-Token": "st_bogus"},
        json={"title": "x", "price": 1, "category": "Books"},
    )
    assert r.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"title": "", "price": 1, "category": "Books"},
        {"title": "Book", "price": -5, "category": "Books"},
        {"title": "Book", "price": "12.5", "category": "Books"},
        {"title": "Book", "price": 1, "category": "All Categories"},
        {"title": "Book", "category": "Books"},
    ],
)
async def test_post_listing_validation(client, signed_in, body):
    _, headers = signed_in["alice"]
    r = await client.post("/v1/listings", headers=headers, json=body)
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_listings_are_public_and_filtered(client, post):
    await post("uid_x", title="Corolla 2015", price=3500000, category="Cars", location="Karachi")
    civic = await post("uid_x", title="Civic 2018", price=5200000, category="Cars", location="Lahore")
    await post("uid_x", title="Civic cover", price=4000, category="Services", location="Lahore")

    r = await client.get("/v1/listings")
    assert r.status_code == 200
    assert [item["title"] for item in r.json()] == ["Civic cover", "Civic 2018", "Corolla 2015"]
    assert all(item["is_owner"] is False for item in r.json())

    r = await client.get(
        "/v1/listings",
        params={"search": "civic", "category": "Cars", "min_price": "1000000", "max_price": ""},
    )
    assert [item["id"] for item in r.json()] == [civic]

    r = await client.get("/v1/listings", params={"search": "LAHORE", "category": "All Categories"})
    assert len(r.json()) == 2


@pytest.mark.asyncio
async def test_listings_reject_unparseable_price_bounds(client):
    r = await client.get("/v1/listings", params={"min_price": "a lot"})
    assert r.status_code == 422


@pytest.mark.asyncio
@pytest.mark.parametrize("value", ["inf", "-inf", "1e400", "nan", str(10**30)])
@pytest.mark.parametrize("bound", ["min_price", "max_price"])
async def test_listings_reject_out_of_range_price_bounds(client, bound, value):
    r = await client.get("/v1/listings", params={bound: value})
    assert r.status_code == 422


@pytest.mark.asyncio
@pytest.mark.parametrize("price", [10**30, "1e400", "inf"])
async def test_post_listing_rejects_out_of_range_price(client, signed_in, db_session, price):
    _, headers = signed_in["alice"]
    r = await client.post("/v1/listings", headers=headers, json={"title": "Yacht", "price": price, "category": "Services"})
    assert r.status_code == 422

    count = (await db_session.execute(select(func.count()).select_from(Listing))).scalar_one()
    assert count == 0


@pytest.mark.asyncio
async def test_largest_price_round_trips(client, signed_in):
    _, headers = signed_in["alice"]
    top = 2**63 - 1
    r = await client.post("/v1/listings", headers=headers, json={"title": "Island", "price": top, "category": "Apartments"})
    assert r.status_code == 201, r.text

    r = await client.get("/v1/listings", params={"min_price": str(top)})
    assert [item["title"] for item in r.json()] == ["Island"]


@pytest.mark.asyncio
async def test_read_listing(client, signed_in, post):
    alice_id, headers = signed_in["alice"]
    listing_id = await post(alice_id, title="Bookshelf", price=7000, category="Services")

    r = await client.get(f"/v1/listings/{listing_id}", headers=headers)
    assert r.status_code == 200
    assert r.json()["is_owner"] is True

    r = await client.get(f"/v1/listings/{listing_id}")
    assert r.json()["is_owner"] is False

    r = await client.get("/v1/listings/lst_missing")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_only_the_owner_deletes(client, signed_in, post):
    alice_id, alice = signed_in["alice"]
    _, bob = signed_in["bob"]
    listing_id = await post(alice_id, title="Fridge")

    r = await client.delete(f"/v1/listings/{listing_id}", headers=bob)
    assert r.status_code == 403
    assert r.json()["detail"]["code"] == "forbidden"

    r = await client.delete(f"/v1/listings/{listing_id}", headers=alice)
    assert r.status_code == 200
    assert r.json()["message"] == "Ad deleted."

    r = await client.delete(f"/v1/listings/{listing_id}", headers=alice)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_toggle_favorite_round_trip(client, signed_in, post):
    _, bob = signed_in["bob"]
    listing_id = await post("uid_seller", title="Guitar")

    r = await client.post(f"/v1/favorites/{listing_id}/toggle", headers=bob)
    assert r.status_code == 200
    assert r.json()["data"] == {"listing_id": listing_id, "saved": True}

    r = await client.get("/v1/favorites", headers=bob)
    assert r.json() == {"listing_ids": [listing_id]}

    r = await client.get("/v1/listings", headers=bob)
    assert r.json()[0]["is_saved"] is True

    r = await client.post(f"/v1/favorites/{listing_id}/toggle", headers=bob)
    assert r.json()["data"]["saved"] is False

    r = await client.post("/v1/favorites/lst_missing/toggle", headers=bob)
    assert r.status_code == 404

    r = await client.post(f"/v1/favorites/{listing_id}/toggle")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_dashboard_tabs(client, signed_in, post):
    alice_id, alice = signed_in["alice"]
    bob_id, bob = signed_in["bob"]
    mine = await post(alice_id, title="Desk lamp", category="Electronics")
    theirs = await post(bob_id, title="Cookbook", category="Books")

    r = await client.post(f"/v1/favorites/{theirs}/toggle", headers=alice)
    assert r.status_code == 200

    r = await client.get("/v1/dashboard", headers=alice)
    assert r.status_code == 200
    board = r.json()
    assert [item["id"] for item in board["my_ads"]] == [mine]
    assert [item["id"] for item in board["favorites"]] == [theirs]
    assert board["my_ads_count"] == 1
    assert board["favorites_count"] == 1

    r = await client.get("/v1/dashboard", headers=alice, params={"category": "Electronics"})
    assert r.json()["favorites"] == []

    r = await client.get("/v1/dashboard", headers=bob)
    assert [item["id"] for item in r.json()["my_ads"]] == [theirs]

    r = await client.get("/v1/dashboard")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_categories(client):
    r = await client.get("/v1/categories")
    assert r.status_code == 200
    body = r.json()
    assert body["all_categories"] == "All Categories"
    assert body["categories"] == [
        "Cars",
        "Motorcycles",
        "Mobile Phones",
        "Apartments",
        "Electronics",
        "Jobs",
        "Services",
        "Books",
    ]
