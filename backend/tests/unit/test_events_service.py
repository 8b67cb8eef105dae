import pytest
from pydantic import ValidationError

from gittogether.domain.events.schemas import EventCreate
from gittogether.domain.events.service import EventForbidden, EventNotFound, EventService
from gittogether.domain.identity.service import ProfileService


@pytest.fixture
def events(clock):
    return EventService(profiles=ProfileService(clock=clock), clock=clock)


def _payload(**overrides):
    data = {"title": "Hack Night", "description": "Pizza and code", "link": "https://example.edu/hack"}
    data.update(overrides)
    return EventCreate(**data)


def test_event_links_must_be_http():
    with pytest.raises(ValidationError):
        _payload(link="ftp://example.edu/file")
    assert _payload(image_url="   ").image_url is None


@pytest.mark.asyncio
async def test_owner_and_admin_can_delete(events, make_user):
    alice, bob = make_user("alice"), make_user("bob")
    admin = make_user("admin", roles=("admin",))
    first = await events.create_event(alice, _payload())
    second = await events.create_event(alice, _payload(title="Demo day"))
    assert first.can_delete is True

    listed = {e.id: e.can_delete for e in await events.list_events(bob)}
    assert listed == {first.id: False, second.id: False}

    with pytest.raises(EventForbidden):
        await events.delete_event(bob, first.id)
    await events.delete_event(alice, first.id)
    await events.delete_event(admin, second.id)
    assert await events.list_events(alice) == []
    with pytest.raises(EventNotFound):
        await events.delete_event(alice, first.id)
