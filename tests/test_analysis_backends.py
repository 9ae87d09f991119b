"""
Unit tests for script rewriting, artifact harvesting and the registry
"""
import pytest

from core.exceptions import NotFoundError, ValidationError
from services.analysis_backends import (
    AnalysisRegistry,
    LiveSimulationBackend,
    ScriptAnalysisBackend,
    find_artifacts,
    rewrite_script,
)

SOURCE = '''import cv2
from tkinter import Tk, filedialog
Tk().withdraw()
video_path = filedialog.askopenfilename()
if not video_path:
    exit()
filename = os.path.splitext(os.path.basename(video_path))[0]
output_folder = filename
os.makedirs(output_folder, exist_ok=True)
while True:
    cv2.imshow("Pose", frame)
    if cv2.waitKey(int(1000/fps)) & 0xFF == ord("q"):
        break
cv2.destroyAllWindows()
'''


class TestRewriteScript:

    def test_rewrite_makes_script_headless(self):
        script = rewrite_script(SOURCE, "/tmp/in/clip.mp4", "/tmp/out/123_Push_ups")

        assert script.startswith("import os\nimport sys\n")
        assert "tkinter" not in script
        assert 'video_path = r"/tmp/in/clip.mp4"' in script
        assert "exit()" not in script
        assert 'filename = "123_Push_ups"' in script
        assert 'output_folder = r"/tmp/out/123_Push_ups"' in script
        assert 'os.makedirs(r"/tmp/out/123_Push_ups", exist_ok=True)' in script
        assert "cv2.imshow" not in script
        assert "    pass" in script
        assert "if 1 & 0xFF" in script
        assert "cv2.destroyAllWindows" not in script

    def test_windows_paths_use_forward_slashes(self):
        script = rewrite_script(SOURCE, "C:\\videos\\clip.mp4", "C:\\outputs\\1_Sit_ups")
        assert 'video_path = r"C:/videos/clip.mp4"' in script


class TestFindArtifacts:

    def test_prefers_result_csv_over_logs(self, tmp_path):
        for name in ("vertical_jump_log.csv", "temp.csv", "jump_results.csv", "run_annotated.mp4", "raw.mp4"):
            (tmp_path / name).write_text("x")

        output = find_artifacts(str(tmp_path))

        assert output.csv_path == "jump_results.csv"
        assert output.video_path == "run_annotated.mp4"

    def test_falls_back_to_any_csv(self, tmp_path):
        (tmp_path / "vertical_jump_log.csv").write_text("x")
        assert find_artifacts(str(tmp_path)).csv_path == "vertical_jump_log.csv"

    def test_empty_directory(self, tmp_path):
        output = find_artifacts(str(tmp_path))
        assert output.csv_path is None and output.video_path is None


class TestRegistry:

    def test_video_and_live_tables(self, registry):
        assert isinstance(registry.get("Sit Reach"), ScriptAnalysisBackend)
        assert isinstance(registry.get("Shuttle Run", live=True), LiveSimulationBackend)
        assert registry.get("Standing Broad Jump").script_name == "verticalbroadjump_video.py"

    def test_unknown_activity(self, registry):
        with pytest.raises(ValidationError):
            registry.get("Squats")
        with pytest.raises(ValidationError):
            registry.get(None, live=True)

    def test_script_lookup_walks_search_path(self, tmp_path):
        first, second = tmp_path / "a", tmp_path / "b"
        first.mkdir()
        second.mkdir()
        (second / "situp_video.py").write_text("")

        backend = ScriptAnalysisBackend("situp_video.py", scripts_dirs=[str(first), str(second)])

        assert backend.locate() == str(second / "situp_video.py")
        with pytest.raises(NotFoundError):
            ScriptAnalysisBackend("missing.py", scripts_dirs=[str(first)]).locate()

    def test_custom_backend_can_be_registered(self, tmp_path):
        registry = AnalysisRegistry()
        backend = LiveSimulationBackend("Pull-ups", "pullup_live.py", scripts_dirs=[], delay_s=0)
        registry.register("Pull-ups", backend)

        output = registry.get("Pull-ups").run(None, str(tmp_path))

        assert output.csv_path == "live_results.csv"
        assert (tmp_path / "live_results.csv").read_text().splitlines()[0] == (
            "count,up_time,down_time,dip_duration_sec,min_elbow_angle"
        )
