import asyncio

from manimatic.config import load_config
from manimatic.errors import TransportError
from manimatic.utils.api_client import ApiClient
from manimatic.utils.logging_utils import configure_logging


async def main() -> None:
    configure_logging()
    cfg = load_config()
    client = ApiClient(
        cfg.api_base_url,
        request_timeout=cfg.request_timeout_seconds,
        probe_timeout=cfg.probe_timeout_seconds,
    )
    try:
        await client.probe()
        print("Probe OK")

        features = await client.fetch_features()
        print(f"Features (version {features.version}):")
        for feature in features.features:
            print(f"  {feature.key}: {'on' if feature.enabled else 'off'}")

        try:
            models = await client.fetch_models()
            print(f"Models: {models.models} (default={models.default_model})")
        except TransportError as e:
            print(f"Models unavailable: {e}")
    except TransportError as e:
        print(f"Backend unreachable: {e}")
        raise SystemExit(1)
    finally:
        await client.aclose()


if __name__ == "__main__":
    asyncio.run(main())
