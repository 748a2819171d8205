"""
label-scanner v0.1

Commands:
  scan --snapshot <image>     Watch an image file a camera tool keeps overwriting
                              and re-analyze it every few seconds.
  scan --video <file>         Same, replaying a recorded video as a live feed.
  scan --text-file <file>     Same, for an ingredient list in a text file.
  analyze <image>             Analyze one label photo.
  analyze --text "<list>"     Analyze one ingredient list.
  ask "<question>"            Ask the co-pilot about a saved result.
  personas                    List personas and their sub-options.

While `scan` runs, type commands on stdin:
  persona <id> <sub-option>   switch lens (next tick re-analyzes immediately)
  clear                       back to general analysis
  pause / resume              stop / restart ticking without quitting
  speak / share               play the audio verdict / copy the share text
  quit

Examples:
  python main.py scan --snapshot /tmp/cam/latest.jpg --persona diabetic --sub-option type2
  python main.py scan --video ~/Movies/aisle.mp4 --speak --log ~/scans.jsonl
  python main.py analyze label.jpg --persona allergies --sub-option nuts
  python main.py analyze --text "Sugar, Maltodextrin, Palm Oil, Red 40"
  python main.py ask "Is this ok for my kid?" --result last.json
"""

import argparse
import asyncio
import json
import logging
import os
import sys
import threading
from pathlib import Path

from dotenv import load_dotenv
load_dotenv(Path(__file__).parent / ".env")

from PIL import Image, UnidentifiedImageError

from analyzer import analyze
from capture import SnapshotSource, TextFileSource, VideoSource, prepare_frame
from config import ANALYSIS_MODEL, COOLDOWN_DURATION, COPILOT_MODEL, MIN_SPACING, TICK_INTERVAL
from copilot import ask as ask_copilot
from errors import AnalysisError, ErrorKind, ParseFailure
from highlighter import TermIndex, matched_villains, render_ansi
from models import AnalysisResult, ImageUnit, TextUnit
from personas import PERSONAS, build_context, describe_catalog, resolve_instruction
from scheduler import ScanScheduler, ScanSettings
from sinks import ClipboardSink, ResultLogSink, SpeechSink, fire


def get_credential(args) -> str:
    return (getattr(args, "api_key", None) or os.environ.get("ANTHROPIC_API_KEY") or "").strip()


def check_persona(args) -> None:
    """Exit early on a typo instead of silently analyzing without a persona."""
    if not args.persona and not args.sub_option:
        return
    if resolve_instruction(args.persona, args.sub_option) is None:
        print(f"ERROR: Unknown persona/sub-option: {args.persona}/{args.sub_option}")
        print("Run: python main.py personas")
        sys.exit(1)


# ── Rendering ─────────────────────────────────────────────────────────────────

def render_result(result: AnalysisResult, color: bool = True) -> str:
    """Human-readable verdict with villain names highlighted."""
    index = TermIndex(result.villains)
    lines = []

    title = result.product_name or "Scanned product"
    lines.append(f"{'=' * 44}")
    lines.append(f"  {title}")
    lines.append(f"  Score    : {result.health_score:.0f}/100")
    lines.append(f"  Dietary  : {result.dietary_classification.value}")
    lines.append(f"{'=' * 44}")

    summary_spans = index.scan(result.summary)
    lines.append(render_ansi(summary_spans, color))

    if result.uncertainty.detected:
        lines.append(f"\n  ⚠ Uncertain: {result.uncertainty.reason}")

    shown = list(summary_spans)
    if result.tradeoffs.pros:
        lines.append("\n  Pros:")
        for pro in result.tradeoffs.pros:
            spans = index.scan(pro)
            shown.extend(spans)
            lines.append(f"    + {render_ansi(spans, color)}")
    if result.tradeoffs.cons:
        lines.append("\n  Cons:")
        for con in result.tradeoffs.cons:
            spans = index.scan(con)
            shown.extend(spans)
            lines.append(f"    - {render_ansi(spans, color)}")

    if result.insights:
        lines.append("\n  Insights:")
        for insight in result.insights:
            lines.append(f"    [{insight.kind.value:<8}] {insight.title} — {insight.description}")

    villains = matched_villains(shown)
    if villains:
        lines.append("\n  Villains:")
        for v in villains:
            lines.append(f"    {v.name}: {v.explanation}")

    lines.append("\n  Radar: " + ", ".join(f"{p.subject} {p.score:.0f}" for p in result.radar))
    return "\n".join(lines)


# ── scan ──────────────────────────────────────────────────────────────────────

def make_source(args):
    if args.snapshot:
        return SnapshotSource(Path(args.snapshot).expanduser())
    if args.video:
        return VideoSource(Path(args.video).expanduser())
    return TextFileSource(Path(args.text_file).expanduser())


def handle_command(line: str, scheduler: ScanScheduler, speech: SpeechSink, clipboard: ClipboardSink) -> bool:
    """Apply one stdin command. Returns False when the user wants to quit."""
    parts = line.split()
    if not parts:
        return True
    cmd = parts[0].lower()

    if cmd in ("quit", "exit", "q"):
        return False
    if cmd == "persona" and len(parts) == 3:
        context = build_context(parts[1], parts[2])
        if context.instruction is None:
            print(f"  Unknown persona/sub-option: {parts[1]}/{parts[2]}")
        else:
            scheduler.set_context(context)
            print(f"  Persona → {PERSONAS[parts[1]].label} / {PERSONAS[parts[1]].sub_options[parts[2]].label}")
    elif cmd == "clear":
        scheduler.set_context(build_context(None, None))
        print("  Persona cleared")
    elif cmd == "pause":
        scheduler.pause()
        print("  Paused")
    elif cmd == "resume":
        scheduler.resume()
        print("  Resumed")
    elif cmd == "speak" and scheduler.result:
        fire(speech, scheduler.result.audio_script)
    elif cmd == "share" and scheduler.result:
        fire(clipboard, scheduler.result.share_content)
        print("  Share text copied")
    else:
        print("  Commands: persona <id> <sub>, clear, pause, resume, speak, share, quit")
    return True


def stdin_lines() -> asyncio.Queue:
    """
    Feed stdin lines into a queue from a daemon thread (None on EOF), so a
    blocked readline never holds up shutdown on Ctrl-C.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def reader():
        for line in sys.stdin:
            loop.call_soon_threadsafe(queue.put_nowait, line)
        loop.call_soon_threadsafe(queue.put_nowait, None)

    threading.Thread(target=reader, daemon=True).start()
    return queue


async def run_scan(args) -> None:
    source = make_source(args)
    speech = SpeechSink()
    clipboard = ClipboardSink()
    log_sink = ResultLogSink(Path(args.log).expanduser()) if args.log else None
    color = not args.no_color and sys.stdout.isatty()

    def on_result(result: AnalysisResult) -> None:
        print("\n" + render_result(result, color) + "\n")
        if log_sink:
            fire(log_sink, result)
        if args.speak:
            fire(speech, result.audio_script)

    def on_error(error: AnalysisError) -> None:
        if error.kind is ErrorKind.QUOTA_EXCEEDED:
            print("  ⏳ High traffic. Slowing down...")
            return
        print(f"  ERROR ({error.kind.value}): {error}")
        if error.needs_credentials:
            print("  Set ANTHROPIC_API_KEY in .env or pass --api-key.")

    async def invoker(unit, instruction, credential):
        return await analyze(unit, instruction, credential, model=args.model)

    scheduler = ScanScheduler(
        source,
        invoker=invoker,
        credential=get_credential(args),
        context=build_context(args.persona, args.sub_option),
        settings=ScanSettings(args.interval, args.spacing, args.cooldown),
        suspended=lambda: speech.playing,
        on_result=on_result,
        on_error=on_error,
    )

    print(f"\n{'=' * 44}")
    print(f"  label-scanner scan")
    print(f"  Source   : {args.snapshot or args.video or args.text_file}")
    print(f"  Persona  : {args.persona or 'none'}{'/' + args.sub_option if args.sub_option else ''}")
    print(f"  Cadence  : tick {args.interval}s, spacing {args.spacing}s, cooldown {args.cooldown}s")
    print(f"{'=' * 44}\n")

    lines = stdin_lines()
    scheduler.start()
    try:
        while True:
            line = await lines.get()
            if line is None:
                # stdin closed (e.g. under nohup); keep scanning until Ctrl-C
                await asyncio.Event().wait()
            if not handle_command(line, scheduler, speech, clipboard):
                break
    finally:
        scheduler.stop()
        speech.stop()
        await scheduler.drain()


def cmd_scan(args):
    check_persona(args)
    try:
        asyncio.run(run_scan(args))
    except KeyboardInterrupt:
        pass
    print("\nScan stopped.")


# ── analyze ───────────────────────────────────────────────────────────────────

def load_image_unit(path: Path) -> ImageUnit:
    try:
        with Image.open(path) as img:
            img.load()
            return ImageUnit(prepare_frame(img), "image/jpeg")
    except FileNotFoundError:
        print(f"ERROR: File not found: {path}")
        sys.exit(1)
    except UnidentifiedImageError:
        print(f"ERROR: Not an image: {path}")
        sys.exit(1)


def cmd_analyze(args):
    check_persona(args)

    if args.text:
        unit = TextUnit(args.text)
    elif args.image:
        unit = load_image_unit(Path(args.image).expanduser())
    else:
        print("ERROR: Give an image path or --text.")
        sys.exit(1)

    instruction = resolve_instruction(args.persona, args.sub_option)

    try:
        result = asyncio.run(analyze(unit, instruction, get_credential(args), model=args.model))
    except AnalysisError as e:
        print(f"ERROR ({e.kind.value}): {e}")
        sys.exit(1)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(render_result(result, color=not args.no_color and sys.stdout.isatty()))

    if args.save:
        Path(args.save).expanduser().write_text(json.dumps(result.to_dict(), indent=2))


# ── ask ───────────────────────────────────────────────────────────────────────

def load_result(path: Path) -> AnalysisResult:
    """Accepts a saved result (analyze --save) or the last line of a scan log."""
    text = path.read_text().strip()
    if not text:
        raise ParseFailure(f"{path} is empty")
    if path.suffix == ".jsonl":
        text = text.splitlines()[-1]
    data = json.loads(text)
    if isinstance(data, dict) and "result" in data:
        data = data["result"]
    return AnalysisResult.from_dict(data)


def cmd_ask(args):
    result = None
    if args.result:
        try:
            result = load_result(Path(args.result).expanduser())
        except (OSError, json.JSONDecodeError, AnalysisError) as e:
            print(f"ERROR: Cannot load result: {e}")
            sys.exit(1)

    try:
        answer = ask_copilot([], args.question, result, get_credential(args), model=args.model)
    except AnalysisError as e:
        print(f"ERROR ({e.kind.value}): {e}")
        sys.exit(1)

    print(answer)


# ── personas ──────────────────────────────────────────────────────────────────

def cmd_personas(_args):
    print(f"\n{'─' * 60}")
    for p in describe_catalog():
        print(f"  {p['persona_id']:<12} {p['label']}")
        for s in p["sub_options"]:
            print(f"      {s['id']:<14} {s['label']}")
    print(f"{'─' * 60}\n")


# ── CLI ───────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="label-scanner",
        description="Point a camera or ingredient list at Claude and get a live health verdict.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging to stderr")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    def add_common(p, model_default):
        p.add_argument("--api-key", help="Anthropic API key (default: ANTHROPIC_API_KEY)")
        p.add_argument("--model", default=model_default, help=f"Claude model (default {model_default})")

    def add_persona(p):
        p.add_argument("--persona", help="Persona id (see 'personas')")
        p.add_argument("--sub-option", help="Sub-option id for the persona")

    # scan
    p_scan = sub.add_parser("scan", help="Continuously analyze a live source")
    src = p_scan.add_mutually_exclusive_group(required=True)
    src.add_argument("--snapshot", metavar="IMAGE", help="Image file a camera tool keeps overwriting")
    src.add_argument("--video", metavar="FILE", help="Video file replayed as a live feed (needs ffmpeg)")
    src.add_argument("--text-file", metavar="FILE", help="Text file with an ingredient list")
    add_persona(p_scan)
    add_common(p_scan, ANALYSIS_MODEL)
    p_scan.add_argument("--interval", type=float, default=TICK_INTERVAL,
                        help=f"Seconds between ticks (default {TICK_INTERVAL})")
    p_scan.add_argument("--spacing", type=float, default=MIN_SPACING,
                        help=f"Min seconds between API calls (default {MIN_SPACING})")
    p_scan.add_argument("--cooldown", type=float, default=COOLDOWN_DURATION,
                        help=f"Pause after a rate limit (default {COOLDOWN_DURATION})")
    p_scan.add_argument("--speak", action="store_true", help="Speak each new verdict")
    p_scan.add_argument("--log", metavar="FILE", help="Append every result to a JSONL file")
    p_scan.add_argument("--no-color", action="store_true", help="No ANSI highlighting")

    # analyze
    p_analyze = sub.add_parser("analyze", help="Analyze one image or ingredient list")
    p_analyze.add_argument("image", nargs="?", help="Label photo")
    p_analyze.add_argument("--text", help="Ingredient list / product description instead of an image")
    add_persona(p_analyze)
    add_common(p_analyze, ANALYSIS_MODEL)
    p_analyze.add_argument("--json", action="store_true", help="Print raw JSON")
    p_analyze.add_argument("--save", metavar="FILE", help="Save the result as JSON (for 'ask')")
    p_analyze.add_argument("--no-color", action="store_true", help="No ANSI highlighting")

    # ask
    p_ask = sub.add_parser("ask", help="Ask the co-pilot a follow-up question")
    p_ask.add_argument("question", help="Your question")
    p_ask.add_argument("--result", metavar="FILE", help="Saved result (.json) or scan log (.jsonl)")
    add_common(p_ask, COPILOT_MODEL)

    # personas
    sub.add_parser("personas", help="List personas and sub-options")

    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command == "scan":
        cmd_scan(args)
    elif args.command == "analyze":
        cmd_analyze(args)
    elif args.command == "ask":
        cmd_ask(args)
    elif args.command == "personas":
        cmd_personas(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
