"""
Video Processing Gateway

Turns an uploaded video into an output directory under OUTPUTS_DIR:

    outputs/<outputId>/
        <csv result>            harvested by the analysis backend
        <name>_annotated.mp4    optional annotated video
        frames/frame_0001.jpg   preview frames sampled by ffmpeg

Output ids and file names coming from clients are always resolved inside
OUTPUTS_DIR; anything escaping it is reported as not found.
"""

import csv
import logging
import os
import re
import subprocess
from datetime import datetime
from typing import Any, Dict, List, Optional

import imageio_ffmpeg as ffmpeg

from core.config import settings
from core.exceptions import NotFoundError
from services.analysis_backends import AnalysisOutput, AnalysisRegistry, find_artifacts

logger = logging.getLogger(__name__)

FRAMES_DIR = "frames"
FRAME_PATTERN = "frame_%04d.jpg"


class FFmpegError(RuntimeError):
    """ffmpeg exited non-zero or could not be started."""


def make_output_id(activity_name: str, live: bool = False) -> str:
    stamp = int(datetime.now().timestamp() * 1000)
    output_id = f"{stamp}_{re.sub(r'[^a-zA-Z0-9]', '_', activity_name)}"
    return f"live_{output_id}" if live else output_id


def outputs_root() -> str:
    root = os.path.abspath(settings.OUTPUTS_DIR)
    os.makedirs(root, exist_ok=True)
    return root


def _confined(*parts: str) -> str:
    root = outputs_root()
    path = os.path.abspath(os.path.join(root, *parts))
    if os.path.commonpath([root, path]) != root or path == root:
        raise NotFoundError("Not found")
    return path


def output_dir_for(output_id: str) -> str:
    path = _confined(output_id)
    if not os.path.isdir(path):
        raise NotFoundError("Results not found")
    return path


def read_csv_rows(path: str) -> List[Dict[str, Any]]:
    try:
        with open(path, newline="", encoding="utf-8") as f:
            return list(csv.DictReader(f))
    except (OSError, csv.Error, UnicodeDecodeError) as e:
        logger.error(f"Error reading CSV file {path}: {e}")
        return []


def build_result(out_dir: str, output: AnalysisOutput) -> Dict[str, Any]:
    csv_data = read_csv_rows(os.path.join(out_dir, output.csv_path)) if output.csv_path else None
    return {
        "csvData": csv_data,
        "videoFile": output.video_path,
        "outputPath": out_dir,
        "files": sorted(os.listdir(out_dir)),
    }


def _run_ffmpeg(args: List[str]) -> None:
    command = [ffmpeg.get_ffmpeg_exe(), "-y"] + args
    logger.debug(f"FFmpeg command: {' '.join(command)}")
    try:
        result = subprocess.run(command, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    except OSError as e:
        raise FFmpegError(str(e))
    if result.returncode != 0:
        raise FFmpegError(result.stderr.decode(errors="replace")[-2000:])


def extract_frames(out_dir: str, video_file: str, fps: Optional[int] = None) -> int:
    """Sample JPEG preview frames; returns how many were written."""
    frames_dir = os.path.join(out_dir, FRAMES_DIR)
    os.makedirs(frames_dir, exist_ok=True)
    _run_ffmpeg([
        "-i", os.path.join(out_dir, video_file),
        "-vf", f"fps={fps or settings.FRAME_SAMPLE_FPS}",
        "-q:v", "2",
        os.path.join(frames_dir, FRAME_PATTERN),
    ])
    count = len([f for f in os.listdir(frames_dir) if f.endswith(".jpg")])
    logger.info(f"Extracted {count} frames from {video_file}")
    return count


def convert_to_browser_format(out_dir: str, video_file: str) -> None:
    """Re-encode to H.264/AAC with faststart and replace the original."""
    source = os.path.join(out_dir, video_file)
    converted = os.path.join(out_dir, video_file.replace(".mp4", "_web.mp4"))
    _run_ffmpeg([
        "-i", source,
        "-c:v", "libx264",
        "-c:a", "aac",
        "-preset", "fast",
        "-crf", "23",
        "-movflags", "+faststart",
        "-pix_fmt", "yuv420p",
        converted,
    ])
    os.replace(converted, source)
    logger.info(f"Converted {video_file} to browser format")


def _prepare_playback(out_dir: str, video_file: str) -> bool:
    try:
        extract_frames(out_dir, video_file)
        return True
    except FFmpegError as e:
        logger.warning(f"Frame extraction failed: {e}")
    try:
        convert_to_browser_format(out_dir, video_file)
    except (FFmpegError, OSError) as e:
        logger.warning(f"Video conversion also failed: {e}")
    return False


def process_video(registry: AnalysisRegistry, activity_name: str, video_path: str) -> Dict[str, Any]:
    """
    Run the backend for ``activity_name`` on an uploaded file.

    The upload is removed afterwards whether or not analysis succeeded.
    """
    try:
        backend = registry.get(activity_name)
        backend.ensure_available()

        output_id = make_output_id(activity_name)
        out_dir = _confined(output_id)
        os.makedirs(out_dir, exist_ok=True)

        logger.info(
            f"Processing video for {activity_name}",
            extra={"extra_fields": {"output_id": output_id, "activity": activity_name}},
        )
        output = backend.run(video_path, out_dir)
        result = build_result(out_dir, output)
        result["hasFrames"] = bool(output.video_path) and _prepare_playback(out_dir, output.video_path)
    finally:
        if os.path.exists(video_path):
            os.remove(video_path)

    logger.info(f"Processing complete: {output_id}")
    return {"outputId": output_id, **result}


def start_live_recording(registry: AnalysisRegistry, activity_name: Optional[str]) -> Dict[str, Any]:
    backend = registry.get(activity_name, live=True)
    backend.ensure_available()

    output_id = make_output_id(activity_name, live=True)
    out_dir = _confined(output_id)
    os.makedirs(out_dir, exist_ok=True)

    output = backend.run(None, out_dir)
    return {"outputId": output_id, **build_result(out_dir, output)}


def get_results(output_id: str) -> Dict[str, Any]:
    out_dir = output_dir_for(output_id)
    return build_result(out_dir, find_artifacts(out_dir))


def list_frames(output_id: str) -> List[str]:
    frames_dir = _confined(output_id, FRAMES_DIR)
    if not os.path.isdir(frames_dir):
        raise NotFoundError("Frames not found")
    prefix = settings.API_PREFIX.rstrip("/")
    return [
        f"{prefix}/frame/{output_id}/{name}"
        for name in sorted(os.listdir(frames_dir))
        if name.endswith(".jpg")
    ]


def frame_path_for(output_id: str, filename: str) -> str:
    path = _confined(output_id, FRAMES_DIR, filename)
    if not os.path.isfile(path):
        raise NotFoundError("Frame not found")
    return path


def video_path_for(output_id: str, filename: str) -> str:
    path = _confined(output_id, filename)
    if not os.path.isfile(path):
        raise NotFoundError("Video not found")
    return path
