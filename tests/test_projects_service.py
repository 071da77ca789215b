"""Tests for saving, editing, deleting and downloading projects."""

import logging
from unittest.mock import patch

import pytest

from iklankilat.services import media
from iklankilat.services.projects import ProjectService, download_filename
from iklankilat.specs.common.enums import PostStatus
from iklankilat.specs.common.errors import PermissionDeniedError, ValidationError
from iklankilat.specs.models.domain import ScheduledPost
from iklankilat.specs.models.http import SaveProjectRequest, UpdateProjectRequest


BLOB_BASE = "https://acct.blob.core.windows.net/media"


@pytest.fixture
def blob():
    uploads = []

    def _upload(*, container, blob_name, data, content_type):
        uploads.append(blob_name)
        return f"{BLOB_BASE}/{blob_name}"

    with patch.object(media.blob_store, "upload_bytes", side_effect=_upload) as upload, \
            patch.object(media.blob_store, "delete_blob", return_value=True) as delete:
        upload.uploads = uploads
        yield upload, delete


@pytest.fixture
def service(repository):
    return ProjectService(repository)


class TestCreate:
    def test_uploads_data_url_then_saves_draft(self, service, repository, blob, png_data_url, user):
        resp = service.create(
            user.uid,
            SaveProjectRequest(mediaUrl=png_data_url, caption="Kopi!", hashtags="#kopi", finalPrompt="kopi"),
        )
        upload, _ = blob
        assert resp.mediaUrl.startswith(f"{BLOB_BASE}/uploads/")
        assert upload.call_count == 1
        saved = repository.get_app_project(user.uid, resp.projectId)
        assert saved.status == "draft"
        assert saved.mediaUrl == resp.mediaUrl
        assert saved.shareText == "Kopi!\n\n#kopi"

    def test_already_hosted_media_is_not_reuploaded(self, service, blob, user):
        url = f"{BLOB_BASE}/videos/job1.mp4"
        resp = service.create(user.uid, SaveProjectRequest(projectType="video", mediaUrl=url, caption="Video"))
        upload, _ = blob
        assert resp.mediaUrl == url
        upload.assert_not_called()

    def test_foreign_host_reusing_our_path_is_reuploaded(self, service, repository, blob, user):
        foreign = "https://evil.example/media/uploads/victim.png"
        with patch.object(media, "fetch_media", return_value=(b"png", "image/png")) as fetch:
            resp = service.create(user.uid, SaveProjectRequest(mediaUrl=foreign, caption="x"))
        upload, delete = blob
        fetch.assert_called_once_with(foreign)
        assert upload.call_count == 1
        assert resp.mediaUrl.startswith(f"{BLOB_BASE}/uploads/")
        assert resp.mediaUrl != f"{BLOB_BASE}/uploads/victim.png"

        service.delete(user.uid, resp.projectId)
        deleted = [c.kwargs["blob_name"] for c in delete.call_args_list]
        assert deleted == [resp.mediaUrl[len(BLOB_BASE) + 1:]]
        assert "uploads/victim.png" not in deleted

    def test_voiceover_goes_to_its_own_folder(self, service, blob, png_data_url, user):
        service.create(
            user.uid,
            SaveProjectRequest(mediaUrl=png_data_url, caption="Halo", voiceoverUrl="data:audio/wav;base64,UklGRg=="),
        )
        upload, _ = blob
        assert upload.uploads[1].startswith("voiceovers/")
        assert upload.uploads[1].endswith(".wav")

    @pytest.mark.parametrize("body", [{"caption": "x"}, {"mediaUrl": "data:image/png;base64,AAAA"}])
    def test_requires_media_and_caption(self, service, blob, user, body):
        with pytest.raises(ValidationError, match="Generate a visual and pick a caption first."):
            service.create(user.uid, SaveProjectRequest(**body))

    def test_image_to_video_caption_optional(self, service, blob, user):
        resp = service.create(
            user.uid, SaveProjectRequest(projectType="image_to_video", mediaUrl=f"{BLOB_BASE}/videos/v.mp4")
        )
        assert resp.projectId


class TestUpdateAndDelete:
    def _project(self, service, user):
        return service.create(user.uid, SaveProjectRequest(mediaUrl=f"{BLOB_BASE}/uploads/old.png", caption="Lama"))

    def test_update_replaces_media_and_deletes_old(self, service, blob, user, png_data_url):
        created = self._project(service, user)
        _, delete = blob
        updated = service.update(
            user.uid, created.projectId, UpdateProjectRequest(mediaUrl=png_data_url, caption="Baru", status="completed")
        )
        assert updated.caption == "Baru"
        assert updated.status == "completed"
        assert updated.mediaUrl != f"{BLOB_BASE}/uploads/old.png"
        delete.assert_called_once_with(container="media", blob_name="uploads/old.png")

    def test_update_other_users_project(self, service, blob, user):
        created = self._project(service, user)
        with pytest.raises(PermissionDeniedError):
            service.update("intruder", created.projectId, UpdateProjectRequest(caption="x"))

    def test_delete_cascades_and_removes_media(self, service, repository, blob, user):
        created = self._project(service, user)
        repository.save_post(
            ScheduledPost(id="p1", userId=user.uid, projectId=created.projectId, postAt="2025-03-05T03:00:00Z")
        )
        _, delete = blob
        resp = service.delete(user.uid, created.projectId)
        assert resp.deleted is True
        assert resp.scheduledPostsDeleted == 1
        assert resp.mediaDeleted is True
        assert repository.list_posts(user.uid) == []
        delete.assert_called_once_with(container="media", blob_name="uploads/old.png")

    def test_delete_with_foreign_media_still_succeeds(self, service, repository, blob, user):
        created = service.create(
            user.uid, SaveProjectRequest(mediaUrl=f"{BLOB_BASE}/uploads/a.png", caption="x")
        )
        asset = repository.get_asset(created.projectId)
        asset.mediaUrl = "https://elsewhere.example/a.png"
        repository.save_asset(asset)
        resp = service.delete(user.uid, created.projectId)
        assert resp.mediaDeleted is False
        assert repository.get_project(user.uid, created.projectId) is None

    def test_blob_already_gone_is_not_reported_orphaned(self, service, blob, user, caplog):
        created = self._project(service, user)
        _, delete = blob
        delete.return_value = False
        with caplog.at_level(logging.WARNING, logger="iklankilat"):
            resp = service.delete(user.uid, created.projectId)
        assert resp.mediaDeleted is False
        assert not [r for r in caplog.records if r.name == "iklankilat" and r.levelno >= logging.WARNING]

    def test_failed_blob_delete_is_logged(self, service, blob, user, caplog):
        created = self._project(service, user)
        _, delete = blob
        delete.side_effect = RuntimeError("storage down")
        with caplog.at_level(logging.WARNING, logger="iklankilat"):
            resp = service.delete(user.uid, created.projectId)
        assert resp.mediaDeleted is False
        assert "media:delete_failed" in [r.getMessage() for r in caplog.records if r.name == "iklankilat"]

    def test_posted_status_survives_merge(self, service, repository, blob, user):
        created = self._project(service, user)
        repository.save_post(
            ScheduledPost(
                id="p1",
                userId=user.uid,
                projectId=created.projectId,
                postAt="2025-03-05T03:00:00Z",
                status=PostStatus.POSTED,
            )
        )
        assert repository.get_app_project(user.uid, created.projectId).status == "posted"


class TestDownload:
    def test_filename_by_type(self):
        assert download_filename("abc", "image") == "konten-abc.png"
        assert download_filename("abc", "video") == "konten-abc.mp4"
        assert download_filename("abc", "image_to_video") == "konten-abc.mp4"

    def test_download_fetches_media(self, service, blob, user):
        created = service.create(user.uid, SaveProjectRequest(mediaUrl=f"{BLOB_BASE}/uploads/a.png", caption="x"))
        with patch.object(media, "fetch_media", return_value=(b"png", "image/png")) as fetch:
            data, mime, filename = service.download(user.uid, created.projectId)
        fetch.assert_called_once_with(f"{BLOB_BASE}/uploads/a.png")
        assert (data, mime, filename) == (b"png", "image/png", f"konten-{created.projectId}.png")
