"""
Output ports — speech, clipboard/share, result log.

Each sink exposes `trigger(payload) -> None`. They are fire-and-forget:
the scan loop never waits on them and a failing sink only logs a warning.
"""

import json
import logging
import shutil
import subprocess
from datetime import datetime, timezone
from pathlib import Path

from config import CLIPBOARD_COMMANDS, SPEECH_COMMANDS
from models import AnalysisResult

logger = logging.getLogger(__name__)


def find_command(candidates) -> tuple[str, ...] | None:
    """First command in `candidates` whose executable is on PATH."""
    for cmd in candidates:
        if shutil.which(cmd[0]):
            return tuple(cmd)
    return None


class SpeechSink:
    """Speaks `audio_script` with the platform TTS command (say / espeak / spd-say)."""

    def __init__(self, command: tuple[str, ...] | None = None):
        self.command = command or find_command(SPEECH_COMMANDS)
        self._proc: subprocess.Popen | None = None

    @property
    def available(self) -> bool:
        return self.command is not None

    @property
    def playing(self) -> bool:
        """True while speech is still running. The scan loop uses this as a suspend signal."""
        return self._proc is not None and self._proc.poll() is None

    def trigger(self, text: str) -> None:
        if not text or self.command is None:
            return
        self.stop()
        self._proc = subprocess.Popen(
            [*self.command, text],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )

    def stop(self) -> None:
        if self.playing:
            self._proc.terminate()
        self._proc = None


class ClipboardSink:
    """Copies `share_content` to the clipboard, or prints it when no clipboard tool exists."""

    def __init__(self, command: tuple[str, ...] | None = None, fallback=print):
        self.command = command or find_command(CLIPBOARD_COMMANDS)
        self.fallback = fallback

    def trigger(self, text: str) -> None:
        if not text:
            return
        if self.command is None:
            self.fallback(text)
            return
        subprocess.run(list(self.command), input=text, text=True, timeout=5)


class ResultLogSink:
    """Appends every published result as one JSON line."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def trigger(self, result: AnalysisResult) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a") as f:
            f.write(json.dumps({
                "published_at": datetime.now(timezone.utc).isoformat(),
                "result": result.to_dict(),
            }) + "\n")


def fire(sink, payload) -> None:
    """Trigger a sink without letting its failure reach the caller."""
    try:
        sink.trigger(payload)
    except Exception as e:
        logger.warning("%s failed: %s", type(sink).__name__, e)
