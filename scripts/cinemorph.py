#!/usr/bin/env python3
"""Generate marketing posters with CineMorph.

Usage:
  python scripts/cinemorph.py --subject me.jpg --reference poster.jpg \
    --output-type landing-hero --landing-position left
  python scripts/cinemorph.py --reference poster.jpg --brief "make it a winter scene" \
    --output-type thumbnail --refine "warm up the skin tones"
  python scripts/cinemorph.py --brief "neon noir detective" --interactive-refine
  python scripts/cinemorph.py --analyze poster.jpg
  python scripts/cinemorph.py --chat

Notes:
- Loads .env from the working directory or any parent, then from the repo root.
- Prompts for a missing API key when stdin is a TTY.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
import threading
import time
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional, Sequence

from cinemorph_api.api import build_request, save_artifact
from cinemorph_api.assistant import Assistant
from cinemorph_api.clients import AnalysisClient
from cinemorph_api.core.config import load_environment
from cinemorph_api.core.contracts import LandingPosition, OutputType, ProcessingStage, StageId, StageStatus
from cinemorph_api.core.credentials import credentials_for
from cinemorph_api.core.errors import CineMorphError, user_message
from cinemorph_api.core.router import resolve_provider
from cinemorph_api.core.scenarios import validate_request
from cinemorph_api.core.utils import ensure_out_dir, read_media
from cinemorph_api.providers import get_backend
from cinemorph_api.studio import Studio


OUTPUT_TYPE_CHOICES = [item.value for item in OutputType]
POSITION_CHOICES = [item.value for item in LandingPosition]

_STATUS_MARKS = {
    StageStatus.PENDING: " ",
    StageStatus.PROCESSING: "~",
    StageStatus.COMPLETED: "x",
    StageStatus.ERROR: "!",
}


def _supports_color() -> bool:
    return sys.stdout.isatty()


def _style(text: str, code: str, enabled: bool) -> str:
    if not enabled:
        return text
    return f"\033[{code}m{text}\033[0m"


class _Spinner:
    def __init__(self, message: str, interval: float = 0.1) -> None:
        self.message = message
        self.interval = interval
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)

    def start(self) -> None:
        if sys.stdout.isatty():
            self._thread.start()

    def stop(self) -> None:
        if not self._thread.is_alive():
            return
        self._stop.set()
        self._thread.join(timeout=1.0)
        sys.stdout.write("\r" + " " * (len(self.message) + 4) + "\r")
        sys.stdout.flush()

    def _run(self) -> None:
        frames = ["|", "/", "-", "\\"]
        index = 0
        while not self._stop.is_set():
            frame = frames[index % len(frames)]
            sys.stdout.write(f"\r{self.message} {frame}")
            sys.stdout.flush()
            time.sleep(self.interval)
            index += 1


class _StageReporter:
    """Prints stage changes and spins while the final render is in flight."""

    def __init__(self, color: bool = False) -> None:
        self.color = color
        self._seen: dict[StageId, tuple[StageStatus, Optional[str]]] = {}
        self._spinner: Optional[_Spinner] = None

    def __call__(self, stages: tuple[ProcessingStage, ...]) -> None:
        for stage in stages:
            state = (stage.status, stage.details)
            if self._seen.get(stage.id) == state:
                continue
            self._seen[stage.id] = state
            if stage.status == StageStatus.PENDING:
                continue
            if stage.id == StageId.FINAL_RENDER and stage.status != StageStatus.PROCESSING:
                self.stop_spinner()
            print(self.format_stage(stage))
            if stage.id == StageId.FINAL_RENDER and stage.status == StageStatus.PROCESSING:
                self._spinner = _Spinner(f"{stage.name} in progress")
                self._spinner.start()

    def format_stage(self, stage: ProcessingStage) -> str:
        mark = f"[{_STATUS_MARKS[stage.status]}]"
        if stage.status == StageStatus.ERROR:
            mark = _style(mark, "1;31", self.color)
        elif stage.status == StageStatus.COMPLETED:
            mark = _style(mark, "1;32", self.color)
        details = f" - {stage.details}" if stage.details else ""
        return f"{mark} {stage.name}{details}"

    def stop_spinner(self) -> None:
        if self._spinner is not None:
            self._spinner.stop()
            self._spinner = None


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


def _load_repo_dotenv() -> Optional[Path]:
    return load_environment() or load_environment(_repo_root())


def _key_prompt() -> Optional[Callable[[str], Optional[str]]]:
    if not sys.stdin.isatty():
        return None

    def prompt(key: str) -> Optional[str]:
        choice = input(f"Set {key} now? [y/N]: ").strip().lower()
        if choice not in {"y", "yes"}:
            return None
        value = getpass.getpass(f"Enter {key}: ").strip()
        return value or None

    return prompt


def _dotenv_target(dotenv_path: Optional[Path]) -> Optional[Path]:
    if not sys.stdin.isatty():
        return None
    target = dotenv_path or (_repo_root() / ".env")
    save = input(f"Save new keys to {target}? [Y/n]: ").strip().lower()
    return target if save in {"", "y", "yes"} else None


def _ensure_credentials(provider: str, dotenv_path: Optional[Path]):
    """Return a credential provider, prompting up front when no key is configured."""
    credentials = credentials_for(provider, prompt=_key_prompt())
    if not credentials.has_credential() and credentials.prompt is not None:
        credentials.dotenv_path = _dotenv_target(dotenv_path)
        credentials.request_credential()
    return credentials


def _run_chat(provider: str) -> int:
    assistant = Assistant(get_backend(provider))
    print(assistant.history[0].text)
    while True:
        try:
            message = input("you> ").strip()
        except EOFError:
            print()
            return 0
        if message.lower() in {"", "q", "quit", "exit"}:
            return 0
        try:
            print(f"assistant> {assistant.send(message)}")
        except CineMorphError as exc:
            logging.getLogger("cinemorph").debug("chat failure", exc_info=True)
            print(f"assistant> Sorry, I encountered an error ({user_message(exc)}).")


def _run_analysis(path: str, provider: str) -> int:
    media = read_media(path, "reference")
    text = AnalysisClient(get_backend(provider)).analyze(media)
    print(text or "Analysis unavailable.")
    return 0 if text else 1


def _refinements(args: argparse.Namespace) -> Sequence[str]:
    return [item for item in (args.refine or []) if item.strip()]


def _interactive_refinements() -> Iterator[str]:
    while True:
        try:
            instruction = input("refine> ").strip()
        except EOFError:
            print()
            return
        if instruction.lower() in {"", "q", "quit", "done"}:
            return
        yield instruction


def _run_generation(args: argparse.Namespace) -> int:
    dotenv_path = _load_repo_dotenv()
    provider = resolve_provider(args.provider)

    if args.chat:
        _ensure_credentials(provider, dotenv_path)
        return _run_chat(provider)
    if args.analyze:
        _ensure_credentials(provider, dotenv_path)
        return _run_analysis(args.analyze, provider)

    request = build_request(
        subject=args.subject,
        reference=args.reference,
        brief=args.brief or "",
        output_type=args.output_type,
        landing_position=args.landing_position,
        preserve_text=args.preserve_text,
        custom_text=args.custom_text or "",
    )
    validate_request(request)
    credentials = _ensure_credentials(provider, dotenv_path)
    reporter = _StageReporter(color=_supports_color() and not args.no_color)
    studio = Studio(
        provider=provider,
        credentials=credentials,
        image_size=args.image_size,
        auto_analyze=not args.no_analysis,
        listeners=[reporter],
    )
    out_dir = ensure_out_dir(Path(args.out) if args.out else None)

    try:
        artifact = studio.generate(request)
    except CineMorphError as exc:
        reporter.stop_spinner()
        print(f"Generation failed: {exc}")
        return 1
    image_path, receipt_path = save_artifact(
        artifact,
        out_dir,
        prefix=provider,
        request=request,
        payload=studio.last_payload,
    )
    print(image_path)
    print(receipt_path)

    instructions = list(_refinements(args))
    if args.interactive_refine and sys.stdin.isatty():
        instructions = _chain(instructions, _interactive_refinements())
    status = 0
    for instruction in instructions:
        try:
            refined = studio.refine(instruction)
        except CineMorphError as exc:
            reporter.stop_spinner()
            print(f"Refinement failed: {exc}")
            status = 1
            continue
        image_path, receipt_path = save_artifact(
            refined,
            out_dir,
            prefix=f"{provider}-refined",
            refinement=instruction,
        )
        print(image_path)
        print(receipt_path)
    return status


def _chain(first: Iterable[str], second: Iterable[str]) -> Iterator[str]:
    yield from first
    yield from second


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CineMorph: generate posters, ads and hero images.")
    parser.add_argument("--subject", help="Subject photo whose identity should appear in the output")
    parser.add_argument("--reference", help="Layout/lighting reference image")
    parser.add_argument("--brief", help="Free-text creative brief")
    parser.add_argument(
        "--output-type",
        default=OutputType.SQUARE_FEED.value,
        help=f"Output format ({', '.join(OUTPUT_TYPE_CHOICES)})",
    )
    parser.add_argument(
        "--landing-position",
        default=LandingPosition.CENTER.value,
        help=f"Subject anchor for landing formats ({', '.join(POSITION_CHOICES)})",
    )
    parser.add_argument("--preserve-text", action="store_true", help="Keep the reference's text layout")
    parser.add_argument("--custom-text", default="", help="Literal text to render (with --preserve-text)")
    parser.add_argument("--provider", default=None, help="Backend provider (gemini, openai)")
    parser.add_argument("--image-size", default=None, help="Target resolution hint (1K, 2K, 4K)")
    parser.add_argument("--out", default=None, help="Output directory (default: outputs/cinemorph/<stamp>)")
    parser.add_argument("--no-analysis", action="store_true", help="Skip reference analysis")
    parser.add_argument("--refine", action="append", help="Refinement instruction (repeatable)")
    parser.add_argument("--interactive-refine", action="store_true", help="Prompt for refinements")
    parser.add_argument("--analyze", metavar="PATH", default=None, help="Only analyze a reference image")
    parser.add_argument("--chat", action="store_true", help="Talk to the product assistant")
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI colors")
    parser.add_argument("--verbose", "-v", action="count", default=0, help="More logging (-vv for debug)")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    try:
        return _run_generation(args)
    except ValueError as exc:
        print(f"Invalid request: {exc}")
        return 2
    except KeyboardInterrupt:
        print("\nCancelled.")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
