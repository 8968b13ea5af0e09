import pytest
import pytest_asyncio

from classifieds.api.v1.endpoints.listings import view_events
from classifieds.services.query_engine import FilterSpec
from classifieds.services.session import AppState, MarketplaceSession
from classifieds.store.changes import LISTINGS_TOPIC, favorites_topic


@pytest_asyncio.fixture
async def open_session(store):
    sessions = []

    def _open(identity_id=None, **state):
        s = MarketplaceSession(store, AppState(**state))
        if identity_id is not None:
            s.identity_established(identity_id)
        else:
            s.identity_cleared()
        sessions.append(s)
        return s

    yield _open

    for s in sessions:
        s.close()
        await s.wait_closed()


def _ids(view):
    return [item.listing.id for item in view]


@pytest.mark.asyncio
async def test_auth_ready_flips_once(store):
    session = MarketplaceSession(store)
    seen = []
    unsubscribe = session.auth_ready.subscribe(seen.append)
    assert session.auth_ready.value is False

    session.identity_established("uid_a")
    session.identity_established("uid_a")
    assert seen == [True]
    assert session.state.auth_ready is True

    unsubscribe()
    session.close()
    await session.wait_closed()


@pytest.mark.asyncio
async def test_saved_listing_shows_up_on_both_dashboards(open_session, eventually):
    bob = open_session("uid_bob")
    alice = open_session("uid_alice")

    posted = await bob.post_listing({"title": "Road bike", "price": "45000", "category": "Services"})
    assert posted.ok
    listing_id = posted.data["listing_id"]
    await eventually(lambda: listing_id in _ids(alice.view.value))

    toggled = await alice.toggle_favorite(listing_id)
    assert toggled.ok
    await eventually(lambda: alice.dashboard().favorites)

    assert _ids(alice.dashboard().favorites) == [listing_id]
    assert alice.dashboard().my_ads == []
    await eventually(lambda: bob.dashboard().my_ads)
    assert _ids(bob.dashboard().my_ads) == [listing_id]

    forbidden = await alice.delete_listing(listing_id)
    assert not forbidden.ok
    assert forbidden.error == "forbidden"


@pytest.mark.asyncio
async def test_deleted_favorite_disappears_from_the_view(open_session, eventually):
    owner = open_session("uid_owner")
    fan = open_session("uid_fan")

    listing_id = (await owner.post_listing({"title": "Sofa", "price": 12000, "category": "Services"})).data["listing_id"]
    await eventually(lambda: listing_id in _ids(fan.view.value))
    await fan.toggle_favorite(listing_id)
    await eventually(lambda: fan.dashboard().favorites)

    deleted = await owner.delete_listing(listing_id)
    assert deleted.ok
    await eventually(lambda: fan.view.value == [])
    assert fan.dashboard().favorites == []


@pytest.mark.asyncio
async def test_post_without_identity_is_unauthenticated(open_session):
    session = open_session()
    result = await session.post_listing({"title": "x", "price": 1, "category": "Books"})
    assert result.error == "unauthenticated"

    toggled = await session.toggle_favorite("lst_any")
    assert toggled.error == "unauthenticated"


@pytest.mark.asyncio
async def test_invalid_form_is_rejected_before_the_store(open_session, store):
    session = open_session("uid_a")
    result = await session.post_listing({"title": "Phone", "price": "cheap", "category": "Electronics"})
    assert not result.ok
    assert result.error == "invalid"
    assert result.message.startswith("price")

    unknown = await session.post_listing({"title": "Phone", "price": 10, "category": "Boats"})
    assert unknown.error == "invalid"


@pytest.mark.asyncio
async def test_successful_post_navigates_home_with_defaults(open_session, eventually):
    session = open_session("uid_a", page="post")
    result = await session.post_listing({"title": "Novel", "price": 300, "category": "Books"})
    assert result.ok
    assert result.message == "Ad posted successfully!"
    assert session.state.page == "home"

    await eventually(lambda: session.view.value)
    doc = session.view.value[0].listing
    assert doc.location == "Unknown"
    assert doc.image_url.startswith("https://placehold.co/")


@pytest.mark.asyncio
async def test_filters_apply_to_the_view(open_session, post, eventually):
    await post("uid_x", title="Cheap phone", price=5000, category="Mobile Phones")
    pricey = await post("uid_x", title="Flagship phone", price=150000, category="Mobile Phones")
    await post("uid_x", title="Phone stand", price=900, category="Electronics")

    session = open_session("uid_a")
    await eventually(lambda: len(session.view.value) == 3)

    session.set_filter(category="Mobile Phones", min_price="10000")
    await eventually(lambda: _ids(session.view.value) == [pricey])
    assert session.state.filter == FilterSpec(category="Mobile Phones", min_price=10000)

    session.reset_filters()
    await eventually(lambda: len(session.view.value) == 3)


@pytest.mark.asyncio
async def test_select_and_delete_returns_home(open_session, eventually):
    session = open_session("uid_a")
    listing_id = (await session.post_listing({"title": "Lamp", "price": 50, "category": "Electronics"})).data["listing_id"]
    await eventually(lambda: session.view.value)

    selected = session.select_listing(listing_id)
    assert selected is not None and selected.is_owner
    assert session.state.page == "details"

    assert (await session.delete_listing(listing_id)).ok
    assert session.state.page == "home"
    assert session.state.selected_listing_id is None


@pytest.mark.asyncio
async def test_navigate_rejects_unknown_pages(store):
    session = MarketplaceSession(store)
    with pytest.raises(ValueError):
        session.navigate("checkout")


@pytest.mark.asyncio
async def test_switching_identity_moves_the_favorites_subscription(open_session, bus, eventually):
    session = open_session("uid_a")
    await eventually(lambda: bus.listener_count(favorites_topic("uid_a")) == 1)

    session.identity_established("uid_b")
    await eventually(lambda: bus.listener_count(favorites_topic("uid_a")) == 0)
    await eventually(lambda: bus.listener_count(favorites_topic("uid_b")) == 1)

    session.identity_cleared()
    assert session.state.identity_id is None
    await eventually(lambda: bus.listener_count(favorites_topic("uid_b")) == 0)


@pytest.mark.asyncio
async def test_close_releases_every_listener(store, bus, eventually):
    session = MarketplaceSession(store)
    session.identity_established("uid_a")
    await eventually(lambda: bus.listener_count(LISTINGS_TOPIC) == 1)

    session.close()
    session.close()
    await session.wait_closed()
    assert bus.listener_count(LISTINGS_TOPIC) == 0
    assert bus.listener_count(favorites_topic("uid_a")) == 0


@pytest.mark.asyncio
async def test_view_stream_emits_server_sent_events(store, post, eventually):
    listing_id = await post("uid_x", title="Camera", price=25000)
    session = MarketplaceSession(store)
    session.identity_established("uid_a")
    await eventually(lambda: session.view.value)

    events = view_events(session)
    first = await events.__anext__()
    assert first.startswith("event: listings\ndata: [")
    assert first.endswith("\n\n")
    assert listing_id in first
    assert '"price_display":"Rs 25,000"' in first

    await events.aclose()
    await session.wait_closed()
    assert session.view.value  # last value is kept after close


@pytest.mark.asyncio
async def test_signed_out_post_is_unauthenticated_even_when_invalid(open_session):
    session = open_session()
    result = await session.post_listing({"title": "", "price": "cheap", "category": "Boats"})
    assert not result.ok
    assert result.error == "unauthenticated"


@pytest.mark.asyncio
async def test_view_is_not_published_before_the_first_snapshot(store, post, eventually):
    listing_id = await post("uid_x", title="Kettle", price=1500)
    session = MarketplaceSession(store)
    seen = []
    session.view.subscribe(seen.append)

    session.identity_established("uid_a")
    assert seen == []
    assert session.view.published is False

    events = view_events(session)
    first = await events.__anext__()
    assert listing_id in first
    assert _ids(seen[0]) == [listing_id]

    await events.aclose()
    await session.wait_closed()


@pytest.mark.asyncio
async def test_identity_switches_do_not_accumulate_subscriptions(store, bus, eventually):
    session = MarketplaceSession(store)
    for i in range(20):
        session.identity_established(f"uid_{i}")
        await eventually(lambda: bus.listener_count(favorites_topic(f"uid_{i}")) == 1)

    await eventually(lambda: len(session._retired_favorites) == 0)

    session.close()
    await session.wait_closed()
    assert session._retired_favorites == []
    assert bus.listener_count(favorites_topic("uid_19")) == 0
