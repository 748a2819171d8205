import io

from PIL import Image

from capture import NOT_READY, SnapshotSource, TextFileSource, TextSource, VideoSource, prepare_frame
from models import ImageUnit, TextUnit


def decode(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def test_prepare_frame_downscales_wide_images():
    frame = decode(prepare_frame(Image.new("RGB", (2560, 1440), "white")))

    assert frame.format == "JPEG"
    assert frame.size == (1280, 720)


def test_prepare_frame_keeps_small_images_and_converts_mode():
    frame = decode(prepare_frame(Image.new("RGBA", (640, 480), (255, 0, 0, 128))))

    assert frame.size == (640, 480)
    assert frame.mode == "RGB"


def test_snapshot_source_reads_latest_still(tmp_path):
    path = tmp_path / "latest.png"
    Image.new("RGB", (1600, 800), "green").save(path)

    unit = SnapshotSource(path).capture()

    assert isinstance(unit, ImageUnit)
    assert unit.mime_type == "image/jpeg"
    assert decode(unit.data).size == (1280, 640)


def test_snapshot_source_not_ready_when_missing_or_partial(tmp_path):
    path = tmp_path / "latest.jpg"
    assert SnapshotSource(path).capture() is NOT_READY

    path.write_bytes(b"not an image yet")
    assert SnapshotSource(path).capture() is NOT_READY


def test_not_ready_is_falsy():
    assert not NOT_READY
    assert repr(NOT_READY) == "NOT_READY"


def test_text_source_update_and_blank():
    source = TextSource()
    assert source.capture() is NOT_READY

    source.update("  Sugar, Salt  ")
    assert source.capture() == TextUnit("Sugar, Salt")

    source.update("   ")
    assert source.capture() is NOT_READY


def test_text_file_source_rereads_each_capture(tmp_path):
    path = tmp_path / "label.txt"
    source = TextFileSource(path)
    assert source.capture() is NOT_READY

    path.write_text("Oats\n")
    assert source.capture() == TextUnit("Oats")

    path.write_text("Oats, Honey")
    assert source.capture() == TextUnit("Oats, Honey")


def test_video_source_without_file_is_not_ready(tmp_path):
    source = VideoSource(tmp_path / "missing.mp4")

    assert source.duration == 0.0
    assert source.position() == 0.0
    assert source.capture() is NOT_READY


def test_video_source_position_loops(tmp_path, clock, monkeypatch):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"")
    monkeypatch.setattr("capture.get_video_duration", lambda _: 4.0)

    source = VideoSource(path, clock=clock)
    clock.advance(5.5)

    assert source.position() == 1.5


def test_video_source_decodes_grabbed_frame(tmp_path, clock, monkeypatch):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"")
    buf = io.BytesIO()
    Image.new("RGB", (320, 240), "blue").save(buf, format="PNG")
    grabbed = []
    monkeypatch.setattr("capture.get_video_duration", lambda _: 10.0)
    monkeypatch.setattr("capture.grab_frame", lambda p, ts: grabbed.append(ts) or buf.getvalue())

    source = VideoSource(path, clock=clock)
    clock.advance(2.0)
    unit = source.capture()

    assert grabbed == [2.0]
    assert isinstance(unit, ImageUnit)
    assert decode(unit.data).size == (320, 240)


def test_video_source_empty_grab_is_not_ready(tmp_path, monkeypatch):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"")
    monkeypatch.setattr("capture.get_video_duration", lambda _: 10.0)
    monkeypatch.setattr("capture.grab_frame", lambda p, ts: b"")

    assert VideoSource(path).capture() is NOT_READY
