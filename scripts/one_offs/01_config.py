from manimatic.config import load_config


def main() -> None:
    try:
        cfg = load_config()
    except ValueError as e:
        print(e)
        raise SystemExit(1)

    print("Config OK")
    print(f"api_base_url: {cfg.api_base_url}")
    print(f"generation_timeout_seconds: {cfg.generation_timeout_seconds}")
    print(f"probe_timeout_seconds: {cfg.probe_timeout_seconds}")
    print(f"request_timeout_seconds: {cfg.request_timeout_seconds}")
    print(f"compile_feature_key: {cfg.compile_feature_key}")
    print(f"default_model: {cfg.default_model}")
    print(f"filter_events_by_session: {cfg.filter_events_by_session}")
    print(f"max_concurrent_requests: {cfg.max_concurrent_requests}")
    print(f"max_requests_per_minute: {cfg.max_requests_per_minute}")


if __name__ == "__main__":
    main()
