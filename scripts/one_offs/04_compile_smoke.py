import asyncio

from _shared import load_state, save_state

from manimatic.config import load_config
from manimatic.main import format_error
from manimatic.session import Session
from manimatic.utils.logging_utils import configure_logging


async def main() -> None:
    configure_logging()
    cfg = load_config()
    saved = load_state()
    script = saved.get("script") or ""
    if not script:
        print("No script in saved state. Run 03_generate_smoke.py first.")
        raise SystemExit(1)

    async with Session(cfg) as session:
        if not session.features.is_enabled(cfg.compile_feature_key):
            print(f"Feature '{cfg.compile_feature_key}' is disabled on this backend")
            raise SystemExit(1)

        if not session.load_script(script) or not await session.compile():
            print(session.state.last_error.message)
            raise SystemExit(1)

        state = await session.wait_for(lambda s: not s.is_video_loading)
        if state.compile_error is not None:
            print(format_error(state.compile_error))
        elif state.last_error is not None:
            print(format_error(state.last_error))
        else:
            print(f"Video: {state.video_url}")
            saved["video_url"] = state.video_url
            save_state(saved)


if __name__ == "__main__":
    asyncio.run(main())
