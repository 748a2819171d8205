"""
Capture sources — where the scan loop gets its next unit of input.

Each source has one method, `capture()`, returning an ImageUnit / TextUnit
or NOT_READY when there is nothing usable yet (camera still warming up,
snapshot half-written, empty text). NOT_READY is not an error; the scan
loop simply skips that tick.
"""

import io
import subprocess
import time
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from config import IMAGE_MAX_WIDTH, JPEG_QUALITY
from models import ImageUnit, TextUnit


class _NotReady:
    def __repr__(self):
        return "NOT_READY"

    def __bool__(self):
        return False


NOT_READY = _NotReady()


def prepare_frame(img: Image.Image, max_width: int = IMAGE_MAX_WIDTH, quality: int = JPEG_QUALITY) -> bytes:
    """
    Downscale to max_width (keeping aspect ratio) and re-encode as JPEG.
    Smaller uploads = faster round trips and fewer tokens.
    """
    if img.width > max_width:
        ratio = max_width / img.width
        img = img.resize((max_width, int(img.height * ratio)), Image.LANCZOS)
    if img.mode != "RGB":
        img = img.convert("RGB")
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


class SnapshotSource:
    """
    Reads the latest still written to `path` by a camera tool
    (e.g. `ffmpeg -f v4l2 -i /dev/video0 -update 1 latest.jpg`).
    """

    def __init__(self, path: Path, max_width: int = IMAGE_MAX_WIDTH):
        self.path = Path(path)
        self.max_width = max_width

    def capture(self):
        if not self.path.exists():
            return NOT_READY
        try:
            with Image.open(self.path) as img:
                img.load()
                return ImageUnit(prepare_frame(img, self.max_width), "image/jpeg")
        except (UnidentifiedImageError, OSError):
            # Writer is mid-way through replacing the file
            return NOT_READY


def get_video_duration(video_path: Path) -> float:
    """Return video duration in seconds using ffprobe."""
    cmd = [
        "ffprobe", "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        str(video_path),
    ]
    result = subprocess.run(cmd, capture_output=True, text=True)
    try:
        return float(result.stdout.strip())
    except ValueError:
        return 0.0


def grab_frame(video_path: Path, timestamp: float) -> bytes:
    """Decode a single frame at `timestamp` seconds, returned as PNG bytes (empty on failure)."""
    cmd = [
        "ffmpeg",
        "-ss", f"{timestamp:.3f}",
        "-i", str(video_path),
        "-vframes", "1",
        "-f", "image2pipe",
        "-vcodec", "png",
        "-",
    ]
    result = subprocess.run(cmd, capture_output=True)
    return result.stdout


class VideoSource:
    """
    Plays a recorded video as if it were a live camera: each capture grabs
    the frame at the wall-clock time elapsed since the source was created,
    looping at the end.
    """

    def __init__(self, video_path: Path, max_width: int = IMAGE_MAX_WIDTH, clock=time.monotonic):
        self.video_path = Path(video_path)
        self.max_width = max_width
        self.clock = clock
        self.started_at = clock()
        self.duration = get_video_duration(self.video_path) if self.video_path.exists() else 0.0

    def position(self) -> float:
        elapsed = self.clock() - self.started_at
        return elapsed % self.duration if self.duration > 0 else 0.0

    def capture(self):
        if self.duration <= 0:
            return NOT_READY
        raw = grab_frame(self.video_path, self.position())
        if not raw:
            return NOT_READY
        try:
            with Image.open(io.BytesIO(raw)) as img:
                img.load()
                return ImageUnit(prepare_frame(img, self.max_width), "image/jpeg")
        except (UnidentifiedImageError, OSError):
            return NOT_READY


class TextSource:
    """Free text typed or pasted by the user. `update()` replaces it."""

    def __init__(self, text: str = ""):
        self.text = text

    def update(self, text: str) -> None:
        self.text = text

    def capture(self):
        content = self.text.strip()
        return TextUnit(content) if content else NOT_READY


class TextFileSource:
    """Ingredient list kept in a text file; re-read on every capture."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def capture(self):
        try:
            content = self.path.read_text(encoding="utf-8", errors="replace").strip()
        except FileNotFoundError:
            return NOT_READY
        return TextUnit(content) if content else NOT_READY
