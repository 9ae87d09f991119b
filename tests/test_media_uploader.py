"""
Unit tests for the media host client and the access remediation pass

The Cloudinary SDK calls are patched; nothing leaves the process.
"""
from unittest.mock import MagicMock, patch

import pytest
from cloudinary.exceptions import Error as CloudinaryError

from core.exceptions import UploadError
from services.media_access import make_folder_public
from services.media_uploader import (
    IMAGE,
    PDF,
    MediaUploader,
    normalize_pdf_data_uri,
    upload_or_inline,
)


@pytest.fixture
def configured():
    return MediaUploader(
        cloud_name="demo",
        api_key="key",
        api_secret="secret",
        upload_prefix="https://media.example.com",
        root_folder="talenttrack",
    )


class TestNormalizePdfDataUri:

    def test_pdf_prefix_is_kept(self):
        data = "data:application/pdf;base64,JVBERi0x"
        assert normalize_pdf_data_uri(data) == data

    def test_octet_stream_is_rewritten(self):
        assert normalize_pdf_data_uri("data:application/octet-stream;base64,JVBERi0x") == (
            "data:application/pdf;base64,JVBERi0x"
        )

    def test_empty_mime_is_rewritten(self):
        assert normalize_pdf_data_uri("data:;base64,JVBERi0x") == "data:application/pdf;base64,JVBERi0x"

    def test_bare_base64_gets_a_prefix(self):
        assert normalize_pdf_data_uri("JVBERi0x") == "data:application/pdf;base64,JVBERi0x"


class TestUpload:

    def test_unconfigured_host_raises(self, uploader):
        with patch("cloudinary.uploader.upload") as upload:
            with pytest.raises(UploadError):
                uploader.upload(IMAGE, "data:image/jpeg;base64,AAAA")
        upload.assert_not_called()

    def test_unknown_kind(self, configured):
        with pytest.raises(ValueError):
            configured.upload("gif", "AAAA")

    def test_pdf_upload_passes_profile_and_credentials(self, configured):
        with patch("cloudinary.uploader.upload") as upload:
            upload.return_value = {"secure_url": "https://cdn/x.pdf", "public_id": "x"}

            url = configured.upload(PDF, "JVBERi0x", public_id="report_1")

        assert url == "https://cdn/x.pdf"
        data = upload.call_args[0][0]
        options = upload.call_args[1]
        assert data == "data:application/pdf;base64,JVBERi0x"
        assert options["folder"] == "talenttrack/reports"
        assert options["public_id"] == "report_1"
        assert options["resource_type"] == "auto"
        assert options["access_mode"] == "public"
        assert options["cloud_name"] == "demo"
        assert options["api_key"] == "key"
        assert options["upload_prefix"] == "https://media.example.com"

    def test_image_upload_without_public_id_omits_it(self, configured):
        with patch("cloudinary.uploader.upload") as upload:
            upload.return_value = {"secure_url": "https://cdn/y.jpg"}
            configured.upload(IMAGE, "data:image/jpeg;base64,AAAA")

        options = upload.call_args[1]
        assert "public_id" not in options
        assert options["quality"] == "auto:good"
        assert options["folder"] == "talenttrack/screenshots"

    def test_host_error_message_is_surfaced(self, configured):
        with patch("cloudinary.uploader.upload", side_effect=CloudinaryError("Invalid image file")):
            with pytest.raises(UploadError, match="Invalid image file"):
                configured.upload(IMAGE, "data:image/jpeg;base64,AAAA")

    def test_response_without_url(self, configured):
        with patch("cloudinary.uploader.upload", return_value={"public_id": "x"}):
            with pytest.raises(UploadError):
                configured.upload(IMAGE, "data:image/jpeg;base64,AAAA")


class TestDelete:

    def test_destroy_is_called_for_the_resource_type(self, configured):
        with patch("cloudinary.uploader.destroy", return_value={"result": "ok"}) as destroy:
            assert configured.delete("talenttrack/videos/v1", resource_type="video") == {"result": "ok"}

        assert destroy.call_args[0][0] == "talenttrack/videos/v1"
        assert destroy.call_args[1]["resource_type"] == "video"

    def test_host_failure_becomes_upload_error(self, configured):
        with patch("cloudinary.uploader.destroy", side_effect=CloudinaryError("not found")):
            with pytest.raises(UploadError):
                configured.delete("missing")


class TestUploadOrInline:

    def test_remote_result(self, fake_uploader):
        result = upload_or_inline(fake_uploader, IMAGE, "data:image/jpeg;base64,AAAA", folder="f", public_id="p")

        assert result.remote is True
        assert result.value == "https://media.example.com/f/p.image"

    def test_failure_keeps_inline_payload(self, uploader):
        result = upload_or_inline(uploader, PDF, "data:application/pdf;base64,JVBERi0x")

        assert result.remote is False
        assert result.value == "data:application/pdf;base64,JVBERi0x"
        assert "not configured" in result.error


class TestListResources:

    def test_follows_pagination(self, configured):
        pages = [
            {"resources": [{"public_id": "a"}], "next_cursor": "c1"},
            {"resources": [{"public_id": "b"}]},
        ]
        with patch("cloudinary.api.resources", side_effect=pages) as resources:
            found = configured.list_resources("talenttrack/reports", resource_type="raw")

        assert [r["public_id"] for r in found] == ["a", "b"]
        first, second = resources.call_args_list
        assert "next_cursor" not in first[1]
        assert second[1]["next_cursor"] == "c1"
        assert first[1]["prefix"] == "talenttrack/reports"
        assert first[1]["resource_type"] == "raw"

    def test_make_public_issues_explicit_call(self, configured):
        with patch("cloudinary.uploader.explicit", return_value={}) as explicit:
            configured.make_public("talenttrack/screenshots/s1_rep1")

        assert explicit.call_args[1]["access_mode"] == "public"
        assert explicit.call_args[1]["type"] == "upload"


class TestMakeFolderPublic:

    def test_continues_past_failures(self):
        uploader = MagicMock()
        uploader.list_resources.return_value = [{"public_id": "a"}, {"public_id": "b"}, {"public_id": "c"}]
        uploader.make_public.side_effect = [{}, UploadError("denied"), {}]

        report = make_folder_public(uploader, "talenttrack/videos", "video")

        assert report.total == 3
        assert report.updated == 2
        assert report.failed == 1
        assert report.failures == ["b"]
        uploader.make_public.assert_any_call("c", resource_type="video")
