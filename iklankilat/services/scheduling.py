import uuid
from datetime import date, datetime, time
from typing import Optional

from iklankilat.services.repository import Repository, now_iso
from iklankilat.shared.logging_utils import info as log_info
from iklankilat.specs.common.datetime_utils import combine_local, format_iso_datetime, resolve_timezone, utc_now
from iklankilat.specs.common.enums import Platform, PostStatus
from iklankilat.specs.common.errors import (
    InstagramNotConnectedError,
    PermissionDeniedError,
    ResourceNotFoundError,
    ValidationError,
)
from iklankilat.specs.models.domain import AppUser, ScheduledPost
from iklankilat.specs.models.http import ScheduleRequest, ScheduleResponse


DEFAULT_POST_TIME = "10:00"


def resolve_post_at(
    day: Optional[str],
    at: Optional[str],
    tz_name: Optional[str],
    today: Optional[date] = None,
) -> datetime:
    """Combine the picker's local date and time; date defaults to today, time to 10:00."""
    tz = resolve_timezone(tz_name)
    try:
        post_day = date.fromisoformat(day) if day else (today or utc_now().astimezone(tz).date())
        post_time = time.fromisoformat(at or DEFAULT_POST_TIME)
    except ValueError:
        raise ValidationError("Use YYYY-MM-DD for the date and HH:MM for the time.")
    return combine_local(post_day, post_time, tz_name)


class SchedulingService:
    def __init__(self, repository: Repository):
        self.repository = repository

    def schedule(self, user: AppUser, request: ScheduleRequest) -> ScheduleResponse:
        """Schedule a saved project; an active post for the project is moved, not duplicated."""
        if not user.isInstagramConnected:
            raise InstagramNotConnectedError()

        project = self.repository.get_project(user.uid, request.projectId)
        if project is None:
            raise ResourceNotFoundError("Project", request.projectId)

        post_at = format_iso_datetime(resolve_post_at(request.date, request.time, request.timezone))
        active = [
            p for p in self.repository.list_posts_for_project(user.uid, project.id)
            if p.status == PostStatus.SCHEDULED.value
        ]
        if active:
            post = active[0]
            post.postAt = post_at
            post.platform = Platform(request.platform).value
        else:
            post = ScheduledPost(
                id=uuid.uuid4().hex,
                userId=user.uid,
                projectId=project.id,
                platform=request.platform,
                postAt=post_at,
                status=PostStatus.SCHEDULED,
            )
        self.repository.save_post(post)
        log_info(user.uid, "schedule:saved", projectId=project.id, postId=post.id, postAt=post_at, rescheduled=bool(active))
        return ScheduleResponse(postId=post.id, projectId=project.id, postAt=post_at, rescheduled=bool(active))

    def update_status(self, user: AppUser, post_id: str, status: PostStatus) -> ScheduledPost:
        """Record the outcome of a manual post."""
        post = self.repository.get_post(user.uid, post_id)
        if post is None or post.userId != user.uid:
            raise PermissionDeniedError("Permission denied or scheduled post not found.")
        status = PostStatus(status)
        post.status = status.value
        post.postedAt = now_iso() if status == PostStatus.POSTED else None
        self.repository.save_post(post)
        log_info(user.uid, "schedule:status_updated", postId=post_id, status=status.value)
        return post
