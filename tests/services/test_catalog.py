"""Tests for federated directory discovery."""

from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from launchpad_federation.models.federation import INSTANCE_STATUS_INACTIVE
from launchpad_federation.services.catalog import DirectoryCatalog
from launchpad_federation.services.registry import PartnerRegistry


@pytest.fixture
def catalog(db_session: Session, partner_client) -> DirectoryCatalog:
    return DirectoryCatalog(PartnerRegistry(db_session, partner_client), partner_client)


@pytest.fixture
def two_partners(make_instance, partner_network):
    alpha = make_instance("https://a.example", name="Alpha")
    beta = make_instance("https://b.example", name="Beta")
    partner_network.directories["https://a.example"] = [
        {
            "id": "main",
            "name": "Alpha Main",
            "category": "tools",
            "fee": {"amount": "5.00", "currency": "USD"},
            "updated_at": "2024-05-01T10:00:00Z",
        },
        {"id": "ai", "name": "Alpha AI", "category": "ai"},
    ]
    partner_network.directories["https://b.example"] = {
        "directories": [{"id": "free", "name": "Beta Free", "category": "tools"}]
    }
    return alpha, beta


@pytest.mark.asyncio
async def test_discover_merges_listings_in_registry_order(catalog, two_partners) -> None:
    alpha, beta = two_partners

    directories = await catalog.discover()

    assert [d.key for d in directories] == [
        ("https://a.example", "main"),
        ("https://a.example", "ai"),
        ("https://b.example", "free"),
    ]
    main = directories[0]
    assert main.instance_id == alpha.id
    assert main.instance_name == "Alpha"
    assert main.fee.amount == Decimal("5.00")
    assert main.updated_at is not None
    assert directories[2].instance_id == beta.id
    assert directories[2].fee.amount == Decimal("0")
    assert directories[2].fee.currency == "USD"


@pytest.mark.asyncio
async def test_discover_filters_by_category_then_limits(catalog, two_partners) -> None:
    tools = await catalog.discover(category="tools")
    limited = await catalog.discover(category="tools", limit=1)

    assert [d.directory_id for d in tools] == ["main", "free"]
    assert [d.directory_id for d in limited] == ["main"]


@pytest.mark.asyncio
async def test_discover_skips_partner_that_misses_the_deadline(
    catalog, two_partners, partner_network
) -> None:
    partner_network.delays["https://a.example"] = 5.0

    directories = await catalog.discover(deadline=0.2)

    assert [d.key for d in directories] == [("https://b.example", "free")]


@pytest.mark.asyncio
async def test_discover_skips_failing_partner(catalog, two_partners, partner_network) -> None:
    partner_network.down.add("https://b.example")

    directories = await catalog.discover()

    assert {d.instance_url for d in directories} == {"https://a.example"}


@pytest.mark.asyncio
async def test_discover_skips_malformed_entries(
    catalog, make_instance, partner_network
) -> None:
    make_instance("https://a.example")
    partner_network.directories["https://a.example"] = [
        {"name": "no id"},
        {"id": "ok", "fee": {"amount": "not-money"}},
        {"id": "good"},
    ]

    directories = await catalog.discover()

    assert [d.directory_id for d in directories] == ["good"]


@pytest.mark.asyncio
async def test_discover_ignores_inactive_instances(
    catalog, make_instance, partner_network
) -> None:
    make_instance("https://a.example", status=INSTANCE_STATUS_INACTIVE)
    partner_network.directories["https://a.example"] = [{"id": "main"}]

    assert await catalog.discover() == []
    assert partner_network.listing_calls("https://a.example") == 0


@pytest.mark.asyncio
async def test_discover_reuses_cached_listings(catalog, two_partners, partner_network) -> None:
    await catalog.discover()
    await catalog.discover(category="ai")

    assert partner_network.listing_calls("https://a.example") == 1
    assert partner_network.listing_calls("https://b.example") == 1
