"""Project lifecycle on top of the repository: save, edit, delete, download."""

from typing import Optional, Tuple

from iklankilat.services import media
from iklankilat.services.repository import Repository
from iklankilat.shared.logging_utils import info as log_info
from iklankilat.specs.common.enums import ProjectStatus, ProjectType
from iklankilat.specs.common.errors import ValidationError
from iklankilat.specs.models.domain import AppProject, ProjectAsset
from iklankilat.specs.models.http import (
    DeleteProjectResponse,
    SaveProjectRequest,
    SaveProjectResponse,
    UpdateProjectRequest,
)


def download_filename(project_id: str, project_type: str) -> str:
    is_video = ProjectType(project_type) in (ProjectType.VIDEO, ProjectType.IMAGE_TO_VIDEO)
    return f"konten-{project_id}.{'mp4' if is_video else 'png'}"


class ProjectService:
    def __init__(self, repository: Repository):
        self.repository = repository

    def create(self, user_id: str, request: SaveProjectRequest) -> SaveProjectResponse:
        """Upload the final media, then create the draft project and its asset."""
        needs_caption = ProjectType(request.projectType) != ProjectType.IMAGE_TO_VIDEO
        if not request.mediaUrl or (needs_caption and not request.caption.strip()):
            raise ValidationError("Generate a visual and pick a caption first.")

        media_url = media.ensure_hosted(request.mediaUrl)
        voiceover_url = media.ensure_hosted(request.voiceoverUrl, folder="voiceovers") if request.voiceoverUrl else None
        project = self.repository.create_project(
            user_id,
            request.projectType,
            {
                "mediaUrl": media_url,
                "caption": request.caption,
                "hashtags": request.hashtags,
                "finalPrompt": request.finalPrompt,
                "voiceoverUrl": voiceover_url,
                "storyboard": request.storyboard,
            },
        )
        return SaveProjectResponse(projectId=project.id, mediaUrl=media_url)

    def update(self, user_id: str, project_id: str, request: UpdateProjectRequest) -> AppProject:
        project = self.repository.get_owned_project(user_id, project_id)
        asset = self.repository.get_asset(project_id) or ProjectAsset(projectId=project_id, mediaUrl="")

        replaced_media: Optional[str] = None
        if request.mediaUrl and request.mediaUrl != asset.mediaUrl:
            replaced_media = asset.mediaUrl
            asset.mediaUrl = media.ensure_hosted(request.mediaUrl)
        for field in ("caption", "hashtags", "finalPrompt"):
            value = getattr(request, field)
            if value is not None:
                setattr(asset, field, value)
        if request.status is not None:
            project.status = ProjectStatus(request.status).value

        self.repository.save_asset(asset)
        self.repository.save_project(project)
        if replaced_media:
            media.delete_media(replaced_media)
        log_info(user_id, "projects:updated", projectId=project_id, mediaReplaced=bool(replaced_media))
        return self.repository.get_app_project(user_id, project_id)

    def delete(self, user_id: str, project_id: str) -> DeleteProjectResponse:
        """Run the delete cascade, then clean up the hosted media best-effort."""
        result = self.repository.delete_project(user_id, project_id)
        media_deleted = False
        if result.asset is not None:
            media_deleted = media.delete_media(result.asset.mediaUrl)
            if result.asset.voiceoverUrl:
                media.delete_media(result.asset.voiceoverUrl)
        log_info(user_id, "projects:media_cleanup", projectId=project_id, mediaDeleted=media_deleted)
        return DeleteProjectResponse(
            projectId=project_id,
            scheduledPostsDeleted=result.scheduled_posts_deleted,
            mediaDeleted=media_deleted,
        )

    def download(self, user_id: str, project_id: str) -> Tuple[bytes, str, str]:
        """Return (bytes, mime type, filename) for the project's media."""
        app_project = self.repository.get_app_project(user_id, project_id)
        if not app_project.mediaUrl:
            raise ValidationError("This project has no media to download.")
        data, mime = media.fetch_media(app_project.mediaUrl)
        return data, mime, download_filename(project_id, app_project.projectType)
