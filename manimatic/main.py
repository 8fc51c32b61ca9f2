"""CLI entry point: generate animation scripts and videos from a terminal."""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from .config import Config, load_config
from .models import ErrorRecord, Phase
from .session import Session
from .utils.logging_utils import configure_logging


def _parse_args(argv) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="manimatic",
        description="Generate Manim scripts and videos from a prompt",
    )
    parser.add_argument("--base-url", default=None, help="API base URL (overrides MANIMATIC_API_BASE_URL)")
    parser.add_argument("--model", default=None, help="Model to generate with")
    parser.add_argument("--prompt", default=None, help="Run one generation and exit")
    parser.add_argument("--timeout", type=float, default=None, help="Seconds to wait for a result")
    parser.add_argument("--save-script", default=None, help="Write the final script to this file")
    return parser.parse_args(argv)


def format_error(record: ErrorRecord) -> str:
    """Render an error with its diagnostic sections."""
    lines = [f"[{record.kind.value}] {record.message}"]
    if record.line is not None:
        lines.append(f"  at line {record.line}")
    for label, content in record.diagnostic_tabs()[1:]:
        lines.append(f"--- {label} ---")
        lines.append(content.rstrip())
    return "\n".join(lines)


class _Printer:
    """Prints what changed after each transition."""

    def __init__(self):
        self.phase: Optional[Phase] = None
        self.error: Optional[ErrorRecord] = None
        self.video_url = ""

    def __call__(self, session: Session) -> None:
        state = session.state
        if state.phase != self.phase:
            self.phase = state.phase
            print(f"\n>> {state.phase.value.replace('_', ' ')}")
            if state.phase == Phase.SCRIPT_READY:
                print("-" * 60)
                print(state.script)
                print("-" * 60)
        if state.last_error is not None and state.last_error != self.error:
            print(format_error(state.last_error))
        self.error = state.last_error
        if state.video_url and state.video_url != self.video_url:
            print(f"Video: {state.video_url}")
        self.video_url = state.video_url


async def _ask(prompt: str) -> str:
    # input() blocks; keep the event loop free for incoming events.
    return await asyncio.to_thread(input, prompt)


async def _read_multiline(prompt: str) -> str:
    print(prompt)
    print("(finish with a single '.' on its own line)")
    lines = []
    while True:
        line = await _ask("")
        if line.strip() == ".":
            break
        lines.append(line)
    return "\n".join(lines)


def _show(session: Session) -> None:
    state = session.state
    print(f"Phase: {state.phase.value}  (script={state.script_stage.value}, video={state.video_stage.value})")
    print(f"Model: {state.selected_model or '(none)'}  available: {', '.join(state.available_models) or '-'}")
    if state.current_script:
        print("-" * 60)
        print(state.current_script)
        print("-" * 60)
    if state.video_url:
        print(f"Video: {state.video_url}")
    if state.compile_error is not None:
        print(format_error(state.compile_error))
    print(f"Events received: {session.channel.events_received}")


def _load_file(session: Session, name: str) -> bool:
    try:
        script = Path(name).read_text(encoding="utf-8")
    except OSError as e:
        print(f"Cannot read {name}: {e}")
        return False
    if session.load_script(script):
        print(f"Loaded {len(script)} characters from {name}.")
        return True
    return False


async def _one_shot(session: Session, prompt: str, wait_seconds: float) -> int:
    if not await session.generate(prompt):
        return 1
    state = await session.wait_for(lambda s: not s.is_script_loading)
    if state.phase == Phase.ERRORED:
        return 1
    try:
        state = await session.wait_for(lambda s: not s.is_video_loading, timeout=wait_seconds)
    except asyncio.TimeoutError:
        print("Video is still rendering; giving up waiting.")
        return 0
    return 1 if state.phase == Phase.ERRORED else 0


async def _interactive(session: Session) -> int:
    while True:
        print("\nOptions: [g]enerate, [e]dit, [l]oad, [c]ompile, [m]odel, [s]how, [q]uit")
        choice = (await _ask("Choice: ")).strip().lower()

        if choice in ("q", "quit", "exit"):
            return 0
        if choice in ("g", "generate"):
            prompt = (await _ask("Describe your animation: ")).strip()
            await session.generate(prompt)
        elif choice in ("e", "edit"):
            script = await _read_multiline("Paste the replacement script:")
            if session.edit_script(script):
                print("Script updated.")
        elif choice in ("l", "load"):
            _load_file(session, (await _ask("Script file: ")).strip())
        elif choice in ("c", "compile"):
            await session.compile()
        elif choice in ("m", "model"):
            name = (await _ask("Model: ")).strip()
            if session.select_model(name):
                print(f"Using {name}.")
        elif choice in ("s", "show"):
            _show(session)
        elif choice:
            print(f"Unknown option: {choice}")
        # Notices are shown once; compilation diagnostics stay until fixed.
        if session.state.last_error is not None and session.state.last_error.is_transient:
            session.dismiss_error()


async def main_async(args: argparse.Namespace) -> int:
    """
    Async main function.

    Returns:
        Process exit code
    """
    configure_logging()

    overrides = {}
    if args.base_url:
        overrides["api_base_url"] = args.base_url
    if args.model:
        overrides["default_model"] = args.model
    if args.timeout:
        overrides["generation_timeout_seconds"] = args.timeout

    try:
        config: Config = load_config(**overrides)
    except ValueError as e:
        print(f"\n❌ {e}")
        return 1
    configure_logging(config.log_level)

    async with Session(config) as session:
        session.subscribe(_Printer())
        if not session.channel.is_open:
            return 1
        if args.model and not session.select_model(args.model):
            return 1

        if args.prompt:
            code = await _one_shot(session, args.prompt, config.generation_timeout_seconds)
        else:
            code = await _interactive(session)

        if args.save_script and session.state.current_script:
            path = Path(args.save_script)
            path.write_text(session.state.current_script, encoding="utf-8")
            print(f"Script saved to {path}")
        return code


def main():
    """
    Synchronous entry point for CLI.

    Usage:
        manimatic --prompt "draw a bouncing ball"
        python -m manimatic.main
    """
    args = _parse_args(sys.argv[1:])
    try:
        code = asyncio.run(main_async(args))
    except KeyboardInterrupt:
        print("\n\n⚠️  Interrupted by user")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
