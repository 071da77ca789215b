"""Document-store access for profiles, projects, assets and scheduled posts.

Container layout (partition key in brackets):

- ``users`` [/id]
- ``projects`` [/userId]
- ``assets`` [/projectId] - one ``final_output`` document per project
- ``scheduled_posts`` [/userId]
"""

import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Optional

from iklankilat.shared.cosmos_client import CosmosDBClient, get_cosmos_client
from iklankilat.shared.logging_utils import info as log_info
from iklankilat.specs.common.datetime_utils import format_iso_datetime, utc_now
from iklankilat.specs.common.enums import PostStatus, ProjectStatus
from iklankilat.specs.common.errors import PermissionDeniedError
from iklankilat.specs.models.domain import (
    PRIMARY_ASSET_ID,
    AppProject,
    Project,
    ProjectAsset,
    ScheduledPost,
    UserProfile,
    merge_app_project,
)


USERS = "users"
PROJECTS = "projects"
ASSETS = "assets"
SCHEDULED_POSTS = "scheduled_posts"


def now_iso() -> str:
    return format_iso_datetime(utc_now())


@dataclass
class DeleteResult:
    project: Project
    asset: Optional[ProjectAsset]
    scheduled_posts_deleted: int


class Repository:
    def __init__(self, client: Optional[CosmosDBClient] = None):
        self.client = client or get_cosmos_client()

    # ---- users -----------------------------------------------------------

    def get_user_profile(self, uid: str) -> Optional[UserProfile]:
        doc = self.client.get_item(USERS, uid, partition_key=uid)
        return UserProfile(**doc) if doc else None

    def create_user_profile(self, uid: str, email: str, display_name: Optional[str]) -> UserProfile:
        profile = UserProfile(
            id=uid,
            uid=uid,
            email=email,
            displayName=display_name,
            createdAt=now_iso(),
            isInstagramConnected=False,
        )
        self.client.upsert_item(USERS, profile.to_document())
        log_info(uid, "users:created")
        return profile

    def ensure_user_profile(self, uid: str, email: str, display_name: Optional[str]) -> UserProfile:
        """Return the existing profile, creating one on first sign-in."""
        return self.get_user_profile(uid) or self.create_user_profile(uid, email, display_name)

    def update_instagram_connection(
        self, uid: str, connected: bool, handle: Optional[str] = None, email: str = ""
    ) -> UserProfile:
        profile = self.get_user_profile(uid) or UserProfile(
            id=uid, uid=uid, email=email, createdAt=now_iso()
        )
        profile.isInstagramConnected = connected
        profile.instagramHandle = handle if connected else None
        self.client.upsert_item(USERS, profile.to_document())
        log_info(uid, "users:instagram_connection", connected=connected)
        return profile

    # ---- projects --------------------------------------------------------

    def create_project(self, user_id: str, project_type: str, asset: Dict) -> Project:
        """Create a draft project and its primary asset."""
        now = now_iso()
        project = Project(
            id=uuid.uuid4().hex,
            userId=user_id,
            projectType=project_type,
            status=ProjectStatus.DRAFT,
            createdAt=now,
            updatedAt=now,
        )
        self.client.upsert_item(PROJECTS, project.to_document())
        self.save_asset(ProjectAsset(projectId=project.id, **asset))
        log_info(user_id, "projects:created", projectId=project.id, projectType=project.projectType)
        return project

    def get_project(self, user_id: str, project_id: str) -> Optional[Project]:
        doc = self.client.get_item(PROJECTS, project_id, partition_key=user_id)
        return Project(**doc) if doc else None

    def get_owned_project(self, user_id: str, project_id: str) -> Project:
        project = self.get_project(user_id, project_id)
        if project is None or project.userId != user_id:
            raise PermissionDeniedError()
        return project

    def list_projects(self, user_id: str) -> List[Project]:
        docs = self.client.find_items(PROJECTS, {"userId": user_id}, partition_key=user_id)
        return [Project(**doc) for doc in docs]

    def save_project(self, project: Project) -> Project:
        project.updatedAt = now_iso()
        self.client.upsert_item(PROJECTS, project.to_document())
        return project

    def get_asset(self, project_id: str) -> Optional[ProjectAsset]:
        doc = self.client.get_item(ASSETS, PRIMARY_ASSET_ID, partition_key=project_id)
        return ProjectAsset(**doc) if doc else None

    def save_asset(self, asset: ProjectAsset) -> ProjectAsset:
        asset.id = PRIMARY_ASSET_ID
        self.client.upsert_item(ASSETS, asset.to_document())
        return asset

    def get_app_project(self, user_id: str, project_id: str) -> AppProject:
        project = self.get_owned_project(user_id, project_id)
        posts = self.list_posts_for_project(user_id, project_id)
        post = _current_post(posts)
        return merge_app_project(project, self.get_asset(project_id), post)

    def list_app_projects(self, user_id: str) -> List[AppProject]:
        """Projects with their primary asset, newest first."""
        projects = sorted(self.list_projects(user_id), key=lambda p: p.createdAt, reverse=True)
        return [merge_app_project(p, self.get_asset(p.id)) for p in projects]

    def delete_project(self, user_id: str, project_id: str) -> DeleteResult:
        """Delete a project with its scheduled posts and assets.

        Ownership is checked before anything is removed. Deletes run one by
        one without a transaction: scheduled posts, then assets, then the
        project itself.
        """
        project = self.get_owned_project(user_id, project_id)

        posts = self.list_posts_for_project(user_id, project_id)
        for post in posts:
            self.client.delete_item(SCHEDULED_POSTS, post.id, partition_key=user_id)

        asset = self.get_asset(project_id)
        for doc in self.client.find_items(ASSETS, {"projectId": project_id}, partition_key=project_id):
            self.client.delete_item(ASSETS, doc["id"], partition_key=project_id)

        self.client.delete_item(PROJECTS, project_id, partition_key=user_id)
        log_info(user_id, "projects:deleted", projectId=project_id, scheduledPosts=len(posts))
        return DeleteResult(project=project, asset=asset, scheduled_posts_deleted=len(posts))

    # ---- scheduled posts -------------------------------------------------

    def list_posts(self, user_id: str) -> List[ScheduledPost]:
        docs = self.client.find_items(SCHEDULED_POSTS, {"userId": user_id}, partition_key=user_id)
        return [ScheduledPost(**doc) for doc in docs]

    def list_posts_for_project(self, user_id: str, project_id: str) -> List[ScheduledPost]:
        docs = self.client.find_items(
            SCHEDULED_POSTS, {"userId": user_id, "projectId": project_id}, partition_key=user_id
        )
        return [ScheduledPost(**doc) for doc in docs]

    def get_post(self, user_id: str, post_id: str) -> Optional[ScheduledPost]:
        doc = self.client.get_item(SCHEDULED_POSTS, post_id, partition_key=user_id)
        return ScheduledPost(**doc) if doc else None

    def save_post(self, post: ScheduledPost) -> ScheduledPost:
        self.client.upsert_item(SCHEDULED_POSTS, post.to_document())
        return post

    def list_scheduled_app_projects(self, user_id: str) -> List[AppProject]:
        """Every scheduled post joined with its project and asset.

        Posts whose project no longer exists are skipped.
        """
        results = []
        for post in sorted(self.list_posts(user_id), key=lambda p: p.postAt):
            project = self.get_project(user_id, post.projectId)
            if project is None:
                continue
            results.append(merge_app_project(project, self.get_asset(project.id), post))
        return results


def _current_post(posts: List[ScheduledPost]) -> Optional[ScheduledPost]:
    """The active post if any, else the most recently scheduled one."""
    if not posts:
        return None
    active = [p for p in posts if p.status == PostStatus.SCHEDULED.value]
    return max(active or posts, key=lambda p: p.postAt)


@lru_cache(maxsize=1)
def get_repository() -> Repository:
    return Repository()
