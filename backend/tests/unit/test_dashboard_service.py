import pytest

from gittogether.domain.dashboard.service import DashboardService
from gittogether.domain.identity.service import ProfileService
from gittogether.domain.social.service import FriendService
from gittogether.domain.teams.schemas import TeamPostCreate
from gittogether.domain.teams.service import PostService, TeamRequestService


@pytest.mark.asyncio
async def test_summary_counts_posts_requests_and_friends(clock, make_user):
    profiles = ProfileService(clock=clock)
    posts = PostService(profiles=profiles, clock=clock)
    requests = TeamRequestService(profiles=profiles, clock=clock)
    friends = FriendService(profiles=profiles, clock=clock)
    owner, amy, ben = make_user("owner"), make_user("amy"), make_user("ben")
    await profiles.ensure_user(amy)
    await profiles.ensure_user(ben)

    post = await posts.create_post(owner, TeamPostCreate(title="Game jam", description="Unity", max_members=3))
    accepted = await requests.create_request(amy, post.id)
    await requests.update_status(owner, accepted.id, "accepted")
    await requests.create_request(ben, post.id)
    request = await friends.send_request(amy, "owner")
    await friends.send_request(ben, "owner")
    await friends.accept_request(owner, request.id)

    dashboard = DashboardService(clock=clock)
    summary = await dashboard.summary(owner)
    assert summary.my_posts == 1
    assert summary.open_posts == 1
    assert summary.pending_received_requests == 1
    assert summary.teams == 1
    assert summary.friends == 1
    assert summary.incoming_friend_requests == 1

    ben_summary = await dashboard.summary(ben)
    assert ben_summary.pending_sent_requests == 1
    assert ben_summary.teams == 0

    admin = await dashboard.admin_summary(make_user("root", roles=("admin",)))
    assert admin.users.total == 3
    assert admin.posts.total == 1
    assert admin.requests.pending == 1
    assert admin.requests.accepted == 1
    assert [p.id for p in admin.recent_posts] == [post.id]
