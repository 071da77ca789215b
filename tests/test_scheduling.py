"""Tests for scheduling projects and recording post outcomes."""

from datetime import date

import pytest

from iklankilat.services.scheduling import SchedulingService, resolve_post_at
from iklankilat.specs.common.enums import PostStatus
from iklankilat.specs.common.errors import (
    InstagramNotConnectedError,
    PermissionDeniedError,
    ResourceNotFoundError,
    ValidationError,
)
from iklankilat.specs.models.http import ScheduleRequest


@pytest.fixture
def service(repository):
    return SchedulingService(repository)


@pytest.fixture
def project(repository, connected_user):
    return repository.create_project(
        connected_user.uid, "image", {"mediaUrl": "https://blob.example/a.png", "caption": "Halo"}
    )


class TestResolvePostAt:
    def test_defaults_to_ten_in_the_morning(self):
        when = resolve_post_at(None, None, "Asia/Jakarta", today=date(2025, 3, 5))
        assert when.isoformat() == "2025-03-05T10:00:00+07:00"

    def test_explicit_date_and_time(self):
        when = resolve_post_at("2025-03-07", "18:45", None)
        assert (when.day, when.hour, when.minute) == (7, 18, 45)

    def test_bad_format_is_validation_error(self):
        with pytest.raises(ValidationError):
            resolve_post_at("07/03/2025", None, None)


class TestSchedule:
    def test_requires_instagram_connection(self, service, user, project):
        with pytest.raises(InstagramNotConnectedError):
            service.schedule(user, ScheduleRequest(projectId=project.id))

    def test_missing_project(self, service, connected_user):
        with pytest.raises(ResourceNotFoundError):
            service.schedule(connected_user, ScheduleRequest(projectId="nope"))

    def test_creates_post_in_utc(self, service, connected_user, project, repository):
        resp = service.schedule(
            connected_user,
            ScheduleRequest(projectId=project.id, date="2025-03-05", time="10:00", timezone="Asia/Jakarta"),
        )
        assert resp.rescheduled is False
        assert resp.postAt == "2025-03-05T03:00:00Z"
        posts = repository.list_posts(connected_user.uid)
        assert len(posts) == 1
        assert posts[0].status == "scheduled"
        assert posts[0].platform == "instagram"

    def test_scheduling_again_moves_existing_post(self, service, connected_user, project, repository):
        first = service.schedule(connected_user, ScheduleRequest(projectId=project.id, date="2025-03-05"))
        second = service.schedule(connected_user, ScheduleRequest(projectId=project.id, date="2025-03-08"))
        assert second.rescheduled is True
        assert second.postId == first.postId
        posts = repository.list_posts(connected_user.uid)
        assert len(posts) == 1
        assert posts[0].postAt.startswith("2025-03-08")


class TestUpdateStatus:
    def test_mark_posted_sets_posted_at(self, service, connected_user, project):
        resp = service.schedule(connected_user, ScheduleRequest(projectId=project.id, date="2025-03-05"))
        post = service.update_status(connected_user, resp.postId, PostStatus.POSTED)
        assert post.status == "posted"
        assert post.postedAt is not None

    def test_posted_post_no_longer_blocks_new_schedule(self, service, connected_user, project, repository):
        resp = service.schedule(connected_user, ScheduleRequest(projectId=project.id, date="2025-03-05"))
        service.update_status(connected_user, resp.postId, PostStatus.POSTED)
        again = service.schedule(connected_user, ScheduleRequest(projectId=project.id, date="2025-04-01"))
        assert again.rescheduled is False
        assert len(repository.list_posts(connected_user.uid)) == 2

    def test_unknown_post(self, service, connected_user):
        with pytest.raises(PermissionDeniedError):
            service.update_status(connected_user, "missing", PostStatus.FAILED)
