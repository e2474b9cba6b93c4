from __future__ import annotations

import pytest

from conftest import FakeZStack
from zmachine.core.exceptions import NotFoundError, ProtocolError, RemoteOperationError
from zmachine.zstack.catalog import Catalog, PassthroughCatalog, ZStackCatalog
from zmachine.zstack.session import Session

pytestmark = [pytest.mark.unit]

IMAGES = "/zstack/v1/images"


@pytest.mark.asyncio
async def test_passthrough_returns_name():
    catalog = PassthroughCatalog()
    assert isinstance(catalog, Catalog)
    assert await catalog.resolve("image", "4a1b") == "4a1b"


class TestZStackCatalog:
    @pytest.mark.asyncio
    async def test_resolves_by_name(self, fake: FakeZStack, session: Session):
        fake.reply("GET", IMAGES, (200, {"inventories": [{"uuid": "img-uuid", "name": "ubuntu"}]}))
        catalog = ZStackCatalog(session)

        assert await catalog.resolve("image", "ubuntu") == "img-uuid"

        [call] = fake.calls_to("GET", IMAGES)
        assert call.query == {"q": "name=ubuntu"}

    @pytest.mark.asyncio
    async def test_results_are_cached(self, fake: FakeZStack, session: Session):
        fake.reply("GET", IMAGES, (200, {"inventories": [{"uuid": "img-uuid"}]}))
        catalog = ZStackCatalog(session)

        await catalog.resolve("image", "ubuntu")
        await catalog.resolve("image", "ubuntu")

        assert len(fake.calls_to("GET", IMAGES)) == 1

    @pytest.mark.asyncio
    async def test_first_match_wins(self, fake: FakeZStack, session: Session):
        fake.reply("GET", IMAGES, (200, {"inventories": [{"uuid": "first"}, {"uuid": "second"}]}))
        assert await ZStackCatalog(session).resolve("image", "ubuntu") == "first"

    @pytest.mark.asyncio
    async def test_no_match_is_not_found(self, fake: FakeZStack, session: Session):
        fake.reply("GET", "/zstack/v1/l3-networks", (200, {"inventories": []}))

        with pytest.raises(NotFoundError) as exc_info:
            await ZStackCatalog(session).resolve("l3 network", "public")
        assert exc_info.value.resource == "l3 network"
        assert exc_info.value.identifier == "public"

    @pytest.mark.asyncio
    async def test_error_is_passed_through(self, fake: FakeZStack, session: Session):
        fake.reply("GET", "/zstack/v1/zones", (503, fake.error("SYS.1006", "management node down")))

        with pytest.raises(RemoteOperationError) as exc_info:
            await ZStackCatalog(session).resolve("zone", "zone-1")
        assert exc_info.value.code == "SYS.1006"
        assert "resolve zone 'zone-1'" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_error_that_is_not_an_object(self, fake: FakeZStack, session: Session):
        fake.reply("GET", "/zstack/v1/zones", (500, {"error": "internal failure"}))

        with pytest.raises(ProtocolError, match="internal failure") as exc_info:
            await ZStackCatalog(session).resolve("zone", "zone-1")
        assert "resolve zone 'zone-1'" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_unknown_kind(self, session: Session):
        with pytest.raises(ValueError, match="Unknown resource kind"):
            await ZStackCatalog(session).resolve("bucket", "b")
