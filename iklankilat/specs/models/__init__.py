from __future__ import annotations

from .domain import (
    AppProject,
    AppUser,
    Project,
    ProjectAsset,
    Scene,
    ScheduledPost,
    UserProfile,
    merge_app_project,
)
from .http import ErrorResponse, TaskStatusResponse


__all__ = [
    "AppProject",
    "AppUser",
    "ErrorResponse",
    "Project",
    "ProjectAsset",
    "Scene",
    "ScheduledPost",
    "TaskStatusResponse",
    "UserProfile",
    "merge_app_project",
]
