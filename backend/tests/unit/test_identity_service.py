import pytest

from gittogether.domain.identity.schemas import ProfileUpdate
from gittogether.domain.identity.service import ProfileNotFound, ProfileService, SkillNotFound
from gittogether.infra.auth import AuthenticatedUser


@pytest.fixture
def profiles(clock):
    return ProfileService(clock=clock)


@pytest.mark.asyncio
async def test_first_call_creates_user_from_claims(profiles):
    auth_user = AuthenticatedUser(id="u-1", email="priya@example.edu", name="  ")
    me = await profiles.get_me(auth_user)
    assert me.id == "u-1"
    assert me.name == "priya"
    again = await profiles.get_me(AuthenticatedUser(id="u-1", name="Someone Else"))
    assert again.name == "priya"


@pytest.mark.asyncio
async def test_update_me_trims_and_ignores_blank_name(profiles, make_user):
    alice = make_user("alice")
    updated = await profiles.update_me(alice, ProfileUpdate(name="  Alice Liddell ", department="CS"))
    assert updated.name == "Alice Liddell"
    assert updated.department == "CS"
    kept = await profiles.update_me(alice, ProfileUpdate(name="   ", bio="hello"))
    assert kept.name == "Alice Liddell"
    assert kept.bio == "hello"


@pytest.mark.asyncio
async def test_public_profile_hides_deactivated_users(profiles, make_user):
    bob = make_user("bob")
    await profiles.ensure_user(bob)
    public = await profiles.get_public_profile("bob")
    assert public.name == "Bob"
    await profiles.set_account_flags("bob", is_active=False)
    with pytest.raises(ProfileNotFound):
        await profiles.get_public_profile("bob")
    with pytest.raises(ProfileNotFound):
        await profiles.get_public_profile("ghost")


@pytest.mark.asyncio
async def test_skill_management_is_idempotent(profiles, make_user):
    alice = make_user("alice")
    await profiles.add_my_skill(alice, "python")
    skills = await profiles.add_my_skill(alice, "python")
    assert [s.id for s in skills] == ["python"]
    assert await profiles.remove_my_skill(alice, "python") == []
    with pytest.raises(SkillNotFound):
        await profiles.add_my_skill(alice, "cobol")


@pytest.mark.asyncio
async def test_catalogue_and_categories(profiles):
    skills = await profiles.list_skills()
    assert {"python", "next-js", "ui-ux-design"} <= {s.id for s in skills}
    categories = await profiles.list_categories()
    assert categories == sorted(categories)
    assert "Programming" in categories


@pytest.mark.asyncio
async def test_profile_admin_flag_grants_admin_role(profiles, make_user):
    root = make_user("root")
    await profiles.ensure_user(root)
    assert not (await profiles.with_profile_roles(root)).has_role("admin")
    await profiles.set_account_flags("root", is_admin=True)
    assert (await profiles.with_profile_roles(root)).has_role("admin")


@pytest.mark.asyncio
async def test_admin_stats_counts_users_and_skills(profiles, make_user):
    for name in ("alice", "bob"):
        await profiles.add_my_skill(make_user(name), "react")
    await profiles.add_my_skill(make_user("alice"), "figma")
    stats = await profiles.admin_stats()
    assert stats["users"] == {"total": 2, "active": 2, "new_last_7_days": 2}
    assert stats["top_skills"][0] == {"name": "react", "count": 2}
