"""
Canteen Registry Tests
"""
import pytest

from smartqueue.core.exceptions import UnknownCanteenError
from smartqueue.services.registry import THEME_TAGS


@pytest.mark.asyncio
async def test_register_assigns_id_and_theme(registry, events, clock):
    canteen = await registry.register("  North Block Canteen ", "Main Campus")

    assert canteen.id
    assert canteen.name == "North Block Canteen"
    assert canteen.theme_tag in THEME_TAGS
    assert canteen.created_at == clock.now
    assert events == ["queue-updated"]
    assert [c.id for c in await registry.list_all()] == [canteen.id]


@pytest.mark.asyncio
async def test_register_requires_name_and_campus(registry):
    with pytest.raises(ValueError):
        await registry.register("", "Main Campus")
    with pytest.raises(ValueError):
        await registry.register("North Block", "   ")


@pytest.mark.asyncio
async def test_require_unknown_canteen(registry):
    assert await registry.get("missing") is None
    with pytest.raises(UnknownCanteenError):
        await registry.require("missing")


@pytest.mark.asyncio
async def test_scan_payload_round_trips(registry, canteen):
    payload = registry.scan_payload(canteen.id)

    assert payload == f"http://canteen.test/?canteenId={canteen.id}"
    assert await registry.resolve_scan_payload(payload) == canteen.id


@pytest.mark.asyncio
async def test_resolve_accepts_bare_id_and_extra_params(registry, canteen):
    assert await registry.resolve_scan_payload(f"  {canteen.id}\n") == canteen.id
    assert await registry.resolve_scan_payload(
        f"https://other.host/order?utm=poster&canteenId={canteen.id}"
    ) == canteen.id


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        "",
        "   ",
        "unknown-canteen",
        "http://canteen.test/?canteenId=unknown-canteen",
        "http://canteen.test/?table=4",
    ],
)
async def test_unresolvable_payloads(registry, canteen, payload):
    assert await registry.resolve_scan_payload(payload) is None
