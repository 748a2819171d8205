import json

import pytest

from conftest import make_payload
from errors import ParseFailure
from main import build_parser, cmd_ask, handle_command, load_result, render_result
from models import NO_CONTEXT, AnalysisResult
from scheduler import ScanScheduler, ScanState
from sinks import ClipboardSink, SpeechSink


class Recorder:
    def __init__(self):
        self.payloads = []

    def trigger(self, payload):
        self.payloads.append(payload)


@pytest.fixture
def scheduler(source):
    return ScanScheduler(source, credential="sk")


def test_scan_needs_exactly_one_source():
    parser = build_parser()

    args = parser.parse_args(["scan", "--snapshot", "latest.jpg", "--persona", "kids", "--sub-option", "teen"])
    assert args.snapshot == "latest.jpg"
    assert args.spacing == 3.0 and args.cooldown == 10.0 and args.interval == 1.0

    with pytest.raises(SystemExit):
        parser.parse_args(["scan", "--snapshot", "a.jpg", "--video", "b.mp4"])


def test_render_result_highlights_villains(result):
    text = render_result(result, color=False)

    assert "Zero Bar" in text
    assert "Score    : 28/100" in text
    assert "[Maltodextrin]" in text
    assert "[Corn Syrup]" in text
    assert "Maltodextrin: A processed corn sugar" in text


def test_render_result_lists_only_villains_that_appear():
    result = AnalysisResult.from_dict(make_payload(
        villains=[{"name": "Maltodextrin", "explanation": "sugar"}, {"name": "Red 40", "explanation": "dye"}],
    ))

    text = render_result(result, color=False)

    assert "Maltodextrin: sugar" in text
    assert "Red 40: dye" not in text


def test_persona_command_switches_context(scheduler):
    assert handle_command("persona diabetic type2", scheduler, Recorder(), Recorder())

    assert scheduler.context.persona_id == "diabetic"
    assert scheduler.context.sub_option_id == "type2"

    handle_command("clear", scheduler, Recorder(), Recorder())
    assert scheduler.context == NO_CONTEXT


def test_unknown_persona_is_ignored(scheduler, capsys):
    handle_command("persona wizard level9", scheduler, Recorder(), Recorder())

    assert scheduler.context == NO_CONTEXT
    assert "Unknown persona" in capsys.readouterr().out


def test_pause_resume_and_quit(scheduler):
    scheduler.start(autotick=False)

    handle_command("pause", scheduler, Recorder(), Recorder())
    assert scheduler.state is ScanState.SUSPENDED
    handle_command("resume", scheduler, Recorder(), Recorder())
    assert scheduler.state is ScanState.AWAITING_SOURCE

    assert handle_command("quit", scheduler, Recorder(), Recorder()) is False
    assert handle_command("", scheduler, Recorder(), Recorder()) is True


def test_speak_without_result_does_nothing(scheduler):
    speech = Recorder()

    handle_command("speak", scheduler, speech, Recorder())

    assert speech.payloads == []


def test_real_sinks_accept_commands(scheduler, monkeypatch):
    monkeypatch.setattr("sinks.shutil.which", lambda name: None)

    assert handle_command("share", scheduler, SpeechSink(), ClipboardSink())


def test_load_result_from_saved_json(tmp_path, payload):
    path = tmp_path / "last.json"
    path.write_text(json.dumps(payload))

    assert load_result(path).product_name == "Zero Bar"


def test_load_result_takes_last_log_line(tmp_path):
    path = tmp_path / "scans.jsonl"
    first = make_payload(productName="First")
    last = make_payload(productName="Last")
    path.write_text(
        json.dumps({"published_at": "t1", "result": first}) + "\n"
        + json.dumps({"published_at": "t2", "result": last}) + "\n"
    )

    assert load_result(path).product_name == "Last"


@pytest.mark.parametrize("name, content", [
    ("scans.jsonl", ""),
    ("last.json", "   \n"),
    ("last.json", "[1, 2, 3]"),
    ("scans.jsonl", '{"published_at": "t1"}\n["not", "a", "result"]\n'),
])
def test_load_result_rejects_empty_or_non_object(tmp_path, name, content):
    path = tmp_path / name
    path.write_text(content)

    with pytest.raises(ParseFailure):
        load_result(path)


def test_ask_reports_unloadable_result(tmp_path, capsys):
    path = tmp_path / "scans.jsonl"
    path.write_text("")
    args = build_parser().parse_args(["ask", "Is this ok?", "--result", str(path)])

    with pytest.raises(SystemExit) as exc:
        cmd_ask(args)

    assert exc.value.code == 1
    assert "ERROR: Cannot load result" in capsys.readouterr().out
