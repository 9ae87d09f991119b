"""
Integration tests for the video processing endpoints

Analysis scripts are real (tiny) Python files run with the current
interpreter; ffmpeg is patched out.
"""
import asyncio
import os
from unittest.mock import patch

import pytest

from core.config import settings
from core.exceptions import NotFoundError
from routers.video import _store_upload
from services import video_processing
from services.video_processing import FFmpegError

DESKTOP_SCRIPT = '''from tkinter import Tk, filedialog
Tk().withdraw()
video_path = filedialog.askopenfilename(title="Select video", filetypes=[("Video files", "*.mp4 *.avi")])
if not video_path:
    print("No file selected")
    exit()
filename = os.path.splitext(os.path.basename(video_path))[0]
output_folder = filename
os.makedirs(output_folder, exist_ok=True)
with open(video_path, "rb") as src:
    data = src.read()
with open(os.path.join(output_folder, filename + "_annotated.mp4"), "wb") as out:
    out.write(data)
with open(os.path.join(output_folder, filename + "_pushups.csv"), "w") as out:
    out.write("count,correct\\n1,true\\n2,false\\n")
'''

FAILING_SCRIPT = '''import sys
sys.stderr.write("pose model missing")
sys.exit(3)
'''


def _fake_ffmpeg(args):
    target = args[-1]
    if "frame_%04d" in target:
        for i in range(1, 4):
            with open(target % i, "wb") as f:
                f.write(b"jpeg")


def _install(workspace_dirs, name, source):
    (workspace_dirs["scripts"] / name).write_text(source)


def _upload(client, activity="Push-ups", content=b"fake-video-bytes", content_type="video/mp4"):
    return client.post(
        "/api/process-video",
        files={"video": ("clip.mp4", content, content_type)},
        data={"activityName": activity, "mode": "upload"},
    )


class TestServiceInfo:

    def test_health(self, client):
        body = client.get("/api/health").json()
        assert body["status"] == "ok"
        assert body["port"] == settings.API_PORT

    def test_lists_supported_workouts(self, client):
        workouts = client.get("/api/test").json()["availableWorkouts"]
        assert "Push-ups" in workouts
        assert "Standing Broad Jump" in workouts
        assert len(workouts) == 8

    def test_root_banner(self, client):
        body = client.get("/").json()
        assert body["status"] == "running"
        assert body["endpoints"]["health"] == "/api/health"


class TestProcessVideo:
    """Test POST /api/process-video"""

    def test_successful_run_harvests_results(self, client, workspace_dirs):
        _install(workspace_dirs, "pushup_video.py", DESKTOP_SCRIPT)

        with patch("services.video_processing._run_ffmpeg", side_effect=_fake_ffmpeg):
            response = _upload(client)

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["success"] is True
        assert body["outputId"].endswith("_Push_ups")
        assert body["csvData"] == [{"count": "1", "correct": "true"}, {"count": "2", "correct": "false"}]
        assert body["videoFile"] == f"{body['outputId']}_annotated.mp4"
        assert body["hasFrames"] is True
        assert "temp_script.py" not in body["files"]
        assert os.listdir(workspace_dirs["uploads"]) == []

    def test_frames_and_files_are_served(self, client, workspace_dirs):
        _install(workspace_dirs, "pushup_video.py", DESKTOP_SCRIPT)
        with patch("services.video_processing._run_ffmpeg", side_effect=_fake_ffmpeg):
            body = _upload(client).json()
        output_id = body["outputId"]

        frames = client.get(f"/api/frames/{output_id}").json()
        assert frames["count"] == 3
        assert frames["frames"][0] == f"/api/frame/{output_id}/frame_0001.jpg"
        assert client.get(frames["frames"][0]).content == b"jpeg"

        video = client.get(f"/api/video/{output_id}/{body['videoFile']}")
        assert video.status_code == 200
        assert video.headers["content-type"] == "video/mp4"
        assert video.headers["cache-control"] == "no-cache, no-store, must-revalidate"
        assert video.content == b"fake-video-bytes"

        results = client.get(f"/api/results/{output_id}").json()
        assert results["videoFile"] == body["videoFile"]
        assert len(results["csvData"]) == 2

    def test_playback_failures_do_not_fail_the_request(self, client, workspace_dirs):
        _install(workspace_dirs, "pushup_video.py", DESKTOP_SCRIPT)

        with patch("services.video_processing._run_ffmpeg", side_effect=FFmpegError("no codec")):
            response = _upload(client)

        assert response.status_code == 200
        assert response.json()["hasFrames"] is False

    def test_script_failure_surfaces_stderr(self, client, workspace_dirs):
        _install(workspace_dirs, "pushup_video.py", FAILING_SCRIPT)

        response = _upload(client)

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert "pose model missing" in body["details"]
        assert os.listdir(workspace_dirs["uploads"]) == []

    def test_interpreter_that_cannot_start(self, client, workspace_dirs, registry):
        _install(workspace_dirs, "pushup_video.py", DESKTOP_SCRIPT)
        registry.get("Push-ups").python = str(workspace_dirs["scripts"] / "no-such-python")

        response = _upload(client)

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to start analysis process"

    def test_no_file(self, client):
        response = client.post("/api/process-video", data={"activityName": "Push-ups"})
        assert response.status_code == 400
        assert response.json()["error"] == "No video file provided"

    def test_non_video_upload(self, client):
        response = _upload(client, content_type="text/plain")
        assert response.status_code == 400

    def test_unsupported_activity(self, client):
        response = _upload(client, activity="Squats")
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid or unsupported activity"

    def test_missing_script_is_404(self, client):
        response = _upload(client)
        assert response.status_code == 404
        assert response.json()["error"] == "Script not found: pushup_video.py"

    def test_oversized_upload_is_413(self, client, workspace_dirs, monkeypatch):
        _install(workspace_dirs, "pushup_video.py", DESKTOP_SCRIPT)
        monkeypatch.setattr(settings, "MAX_VIDEO_BYTES", 8)

        response = _upload(client)

        assert response.status_code == 413
        assert os.listdir(workspace_dirs["uploads"]) == []


class TestLiveRecording:
    """Test POST /api/start-live-recording"""

    def test_push_up_sample_rows(self, client, workspace_dirs):
        _install(workspace_dirs, "pushup_live.py", "# camera script\n")

        response = client.post("/api/start-live-recording", json={"activityName": "Push-ups"})

        assert response.status_code == 200
        body = response.json()
        assert body["outputId"].startswith("live_")
        assert body["files"] == ["live_results.csv"]
        assert len(body["csvData"]) == 3
        assert body["csvData"][2]["correct"] == "false"
        assert body["videoFile"] is None

    def test_activity_without_samples_returns_no_rows(self, client, workspace_dirs):
        _install(workspace_dirs, "situp_live.py", "# camera script\n")

        body = client.post("/api/start-live-recording", json={"activityName": "Sit-ups"}).json()

        assert body["csvData"] is None
        assert body["files"] == []

    def test_unsupported_live_activity(self, client):
        response = client.post("/api/start-live-recording", json={"activityName": "Sit Reach"})
        assert response.status_code == 400

    def test_missing_live_script_is_404(self, client):
        response = client.post("/api/start-live-recording", json={"activityName": "Pull-ups"})
        assert response.status_code == 404


class TestOutputConfinement:

    def test_unknown_results_are_404(self, client):
        assert client.get("/api/results/123_nothing").status_code == 404
        assert client.get("/api/frames/123_nothing").status_code == 404
        assert client.get("/api/frame/123_nothing/frame_0001.jpg").status_code == 404
        assert client.get("/api/video/123_nothing/x.mp4").status_code == 404

    @pytest.mark.parametrize("output_id,filename", [("..", "secret.txt"), ("x", "../../secret.txt")])
    def test_paths_cannot_escape_outputs(self, workspace_dirs, output_id, filename):
        (workspace_dirs["outputs"].parent / "secret.txt").write_text("nope")
        with pytest.raises(NotFoundError):
            video_processing.video_path_for(output_id, filename)

    def test_results_for_parent_directory_are_404(self):
        with pytest.raises(NotFoundError):
            video_processing.output_dir_for("..")


class BrokenUpload:
    """Upload stream that drops after the first chunk."""

    filename = "clip.mp4"

    def __init__(self):
        self.reads = 0
        self.closed = False

    async def read(self, size):
        self.reads += 1
        if self.reads == 1:
            return b"first-chunk"
        raise OSError("connection reset by peer")

    async def close(self):
        self.closed = True


class TestStoreUpload:

    def test_partial_file_is_removed_when_the_stream_fails(self, workspace_dirs):
        upload = BrokenUpload()

        with pytest.raises(OSError):
            asyncio.run(_store_upload(upload))

        assert os.listdir(workspace_dirs["uploads"]) == []
        assert upload.closed is True
