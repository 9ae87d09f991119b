"""
Analysis Backends

An analysis backend turns an input video into result artifacts inside an
output directory. The video gateway only sees the ``AnalysisBackend``
interface; which implementation handles an activity is decided by the
``AnalysisRegistry``.

Implementations:
- ScriptAnalysisBackend: rewrites a desktop pose-analysis script to run
  headless on a given file, then runs it in a subprocess.
- LiveSimulationBackend: stand-in for camera capture. Waits a fixed delay
  and writes canned sample rows.
"""

import csv
import logging
import os
import re
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from core.config import settings
from core.exceptions import NotFoundError, SubprocessError, ValidationError

logger = logging.getLogger(__name__)

TEMP_SCRIPT_NAME = "temp_script.py"
LIVE_RESULTS_NAME = "live_results.csv"
ANNOTATED_SUFFIX = "_annotated.mp4"
LEGACY_LOG_NAME = "vertical_jump_log.csv"

VIDEO_SCRIPTS: Dict[str, str] = {
    "Push-ups": "pushup_video.py",
    "Pull-ups": "pullup_video.py",
    "Sit-ups": "situp_video.py",
    "Vertical Jump": "verticaljump_video.py",
    "Shuttle Run": "shuttlerun_video.py",
    "Sit Reach": "sitreach_video.py",
    "Vertical Broad Jump": "verticalbroadjump_video.py",
    "Standing Broad Jump": "verticalbroadjump_video.py",
}

LIVE_SCRIPTS: Dict[str, str] = {
    "Push-ups": "pushup_live.py",
    "Pull-ups": "pullup_live.py",
    "Sit-ups": "situp_live.py",
    "Vertical Jump": "verticaljump_live.py",
    "Shuttle Run": "shuttlerun_live.py",
}

# Sample rows returned by the live stub
MOCK_LIVE_ROWS: Dict[str, List[Dict[str, Any]]] = {
    "Push-ups": [
        {"count": 1, "down_time": 2.1, "up_time": 3.2, "dip_duration_sec": 1.1, "min_elbow_angle": 68, "correct": True},
        {"count": 2, "down_time": 4.5, "up_time": 5.8, "dip_duration_sec": 1.3, "min_elbow_angle": 72, "correct": True},
        {"count": 3, "down_time": 7.2, "up_time": 8.1, "dip_duration_sec": 0.9, "min_elbow_angle": 85, "correct": False},
    ],
    "Pull-ups": [
        {"count": 1, "up_time": 2.0, "down_time": 4.5, "dip_duration_sec": 2.5, "min_elbow_angle": 165},
        {"count": 2, "up_time": 6.0, "down_time": 9.2, "dip_duration_sec": 3.2, "min_elbow_angle": 170},
    ],
}


@dataclass
class AnalysisOutput:
    """Artifacts left in the output directory, as file names."""
    csv_path: Optional[str] = None
    video_path: Optional[str] = None


def find_artifacts(out_dir: str) -> AnalysisOutput:
    """Pick the result CSV and annotated video out of an output directory."""
    files = sorted(os.listdir(out_dir))
    csv_files = [f for f in files if f.endswith(".csv")]
    csv_file = next(
        (f for f in csv_files if "temp" not in f and LEGACY_LOG_NAME not in f),
        csv_files[0] if csv_files else None,
    )
    video_file = next((f for f in files if f.endswith(ANNOTATED_SUFFIX)), None)
    return AnalysisOutput(csv_path=csv_file, video_path=video_file)


def rewrite_script(source: str, video_path: str, out_dir: str) -> str:
    """
    Make an interactive analysis script run headless on ``video_path``.

    File dialogs become a fixed path, output naming is pinned to
    ``out_dir`` and OpenCV window calls are neutralised.
    """
    video = video_path.replace("\\", "/")
    output = out_dir.replace("\\", "/")
    base_name = os.path.basename(os.path.normpath(out_dir))

    def literal(text: str):
        return lambda _match: text

    script = re.sub(r"from tkinter import Tk, filedialog\n", "", source)
    script = re.sub(r"Tk\(\)\.withdraw\(\)\n", "", script)

    fixed_path = literal(f'video_path = r"{video}"')
    script = re.sub(r"video_path = filedialog\.askopenfilename\([^)]*\[[^\]]*\][^)]*\)", fixed_path, script)
    script = re.sub(r"video_path = filedialog\.askopenfilename\(\)", fixed_path, script)

    script = re.sub(r"if not video_path:\s*\n\s*print\([^)]*\)\s*\n\s*exit\(\)", "", script)
    script = re.sub(r"if not video_path:\s*\n\s*exit\(\)", "", script)

    script = re.sub(
        r"filename = os\.path\.splitext\(os\.path\.basename\(video_path\)\)\[0\]",
        literal(f'filename = "{base_name}"'),
        script,
    )
    script = re.sub(r"output_folder = filename", literal(f'output_folder = r"{output}"'), script)

    script = "import os\nimport sys\n" + script
    script = re.sub(
        r"os\.makedirs\(output_folder, exist_ok=True\)",
        literal(f'os.makedirs(r"{output}", exist_ok=True)'),
        script,
    )

    # Headless
    script = re.sub(r"^([ \t]*)cv2\.imshow\([^)]*\)", r"\1pass", script, flags=re.MULTILINE)
    script = re.sub(r"cv2\.waitKey\(int\(1000/fps\)\)", "1", script)
    script = re.sub(r"cv2\.waitKey\([^)]*\)", "1", script)
    script = re.sub(r"^([ \t]*)cv2\.destroyAllWindows\(\)", r"\1pass", script, flags=re.MULTILINE)
    return script


class AnalysisBackend(ABC):
    """
    Base class for activity analysis.

    ``run`` leaves its artifacts in ``out_dir`` and reports which of them
    are the result table and the annotated video.
    """

    def ensure_available(self) -> None:
        """Raise if the backend cannot run at all."""

    @abstractmethod
    def run(self, video_path: Optional[str], out_dir: str) -> AnalysisOutput:
        pass


class ScriptBackedBackend(AnalysisBackend):
    """Backend tied to a named script file found on a search path."""

    def __init__(self, script_name: str, scripts_dirs: Optional[List[str]] = None):
        self.script_name = script_name
        self.scripts_dirs = scripts_dirs if scripts_dirs is not None else settings.scripts_dirs

    def locate(self) -> str:
        for directory in self.scripts_dirs:
            candidate = os.path.join(directory, self.script_name)
            if os.path.isfile(candidate):
                return os.path.abspath(candidate)
        raise NotFoundError(f"Script not found: {self.script_name}")

    def ensure_available(self) -> None:
        self.locate()


class ScriptAnalysisBackend(ScriptBackedBackend):
    """Runs a rewritten analysis script as a child process."""

    def __init__(
        self,
        script_name: str,
        scripts_dirs: Optional[List[str]] = None,
        python: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(script_name, scripts_dirs)
        self.python = python or settings.ANALYSIS_PYTHON
        self.timeout = timeout if timeout is not None else settings.ANALYSIS_TIMEOUT_S

    def run(self, video_path: Optional[str], out_dir: str) -> AnalysisOutput:
        if not video_path:
            raise ValidationError("No video file provided")

        with open(self.locate(), "r", encoding="utf-8") as f:
            source = f.read()

        temp_script = os.path.join(out_dir, TEMP_SCRIPT_NAME)
        with open(temp_script, "w", encoding="utf-8") as f:
            f.write(rewrite_script(source, os.path.abspath(video_path), os.path.abspath(out_dir)))

        logger.info(
            f"Running analysis script {self.script_name}",
            extra={"extra_fields": {"script": self.script_name, "out_dir": out_dir}},
        )
        try:
            result = subprocess.run(
                [self.python, TEMP_SCRIPT_NAME],
                cwd=out_dir,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise SubprocessError("Analysis script timed out", details=f"{self.script_name} exceeded {e.timeout}s")
        except OSError as e:
            raise SubprocessError("Failed to start analysis process", details=str(e))
        finally:
            if os.path.exists(temp_script):
                os.remove(temp_script)

        if result.returncode != 0:
            logger.error(f"Analysis script {self.script_name} exited with code {result.returncode}")
            raise SubprocessError(
                "Failed to process video",
                details=f"Python script failed with code {result.returncode}: {result.stderr}",
            )

        return find_artifacts(out_dir)


class LiveSimulationBackend(ScriptBackedBackend):
    """
    Camera capture is not performed. After a fixed delay the canned rows
    for the activity are written to ``live_results.csv``.
    """

    def __init__(
        self,
        activity_name: str,
        script_name: str,
        scripts_dirs: Optional[List[str]] = None,
        delay_s: Optional[float] = None,
    ):
        super().__init__(script_name, scripts_dirs)
        self.activity_name = activity_name
        self.delay_s = delay_s if delay_s is not None else settings.LIVE_SIMULATION_DELAY_S

    def run(self, video_path: Optional[str], out_dir: str) -> AnalysisOutput:
        time.sleep(self.delay_s)
        rows = MOCK_LIVE_ROWS.get(self.activity_name, [])
        if not rows:
            return AnalysisOutput()

        csv_path = os.path.join(out_dir, LIVE_RESULTS_NAME)
        with open(csv_path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=list(rows[0].keys()))
            writer.writeheader()
            for row in rows:
                writer.writerow({k: str(v).lower() if isinstance(v, bool) else v for k, v in row.items()})
        return AnalysisOutput(csv_path=LIVE_RESULTS_NAME)


class AnalysisRegistry:
    """
    Maps exact activity names to backends, separately for uploaded video
    and live capture.

    Usage:
        registry = AnalysisRegistry.from_settings()
        backend = registry.get("Push-ups")
    """

    def __init__(self):
        self._video: Dict[str, AnalysisBackend] = {}
        self._live: Dict[str, AnalysisBackend] = {}

    def register(self, activity_name: str, backend: AnalysisBackend, live: bool = False) -> None:
        table = self._live if live else self._video
        if activity_name in table:
            logger.warning(f"Overwriting analysis backend for activity: {activity_name}")
        table[activity_name] = backend

    def activities(self, live: bool = False) -> List[str]:
        return list((self._live if live else self._video).keys())

    def get(self, activity_name: Optional[str], live: bool = False) -> AnalysisBackend:
        backend = (self._live if live else self._video).get(activity_name or "")
        if backend is None:
            suffix = " for live recording" if live else ""
            raise ValidationError(f"Invalid or unsupported activity{suffix}", field="activityName")
        return backend

    @classmethod
    def from_settings(cls) -> "AnalysisRegistry":
        registry = cls()
        for activity, script in VIDEO_SCRIPTS.items():
            registry.register(activity, ScriptAnalysisBackend(script))
        for activity, script in LIVE_SCRIPTS.items():
            registry.register(activity, LiveSimulationBackend(activity, script), live=True)
        return registry


def get_analysis_registry() -> AnalysisRegistry:
    """Dependency for FastAPI; tests override it."""
    return AnalysisRegistry.from_settings()
