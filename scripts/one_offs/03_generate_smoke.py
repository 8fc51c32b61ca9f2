import asyncio

from _shared import get_prompt, save_state

from manimatic.config import load_config
from manimatic.models import Phase
from manimatic.session import Session
from manimatic.utils.logging_utils import configure_logging


async def main() -> None:
    configure_logging()
    cfg = load_config()
    prompt = get_prompt()

    async with Session(cfg) as session:
        if not session.channel.is_open:
            print(session.state.last_error.message)
            raise SystemExit(1)

        print(f"Generating with {session.state.selected_model}: {prompt}")
        if not await session.generate(prompt):
            print(session.state.last_error.message)
            raise SystemExit(1)

        state = await session.wait_for(lambda s: not s.is_script_loading)
        if state.phase == Phase.ERRORED:
            print(f"Failed: {state.last_error.message}")
            raise SystemExit(1)
        print(f"Script: {len(state.script)} chars")

        try:
            state = await session.wait_for(lambda s: not s.is_video_loading, timeout=cfg.generation_timeout_seconds)
        except asyncio.TimeoutError:
            print("Render still running, not waiting any longer")

        save_state({
            "prompt": prompt,
            "model": state.selected_model,
            "script": state.script,
            "video_url": state.video_url,
            "phase": state.phase.value,
        })
        print(f"Phase: {state.phase.value}")
        if state.video_url:
            print(f"Video: {state.video_url}")


if __name__ == "__main__":
    asyncio.run(main())
