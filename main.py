import argparse
import asyncio
import logging

from devdigest.config import Settings, configure_logging
from devdigest.models import Platform
from devdigest.pipeline import build_pipeline

logger = logging.getLogger("main")


def run_fetch(settings: Settings, platforms) -> int:
    pipeline = build_pipeline(settings)
    results = asyncio.run(pipeline.run_all(platforms))

    print("\n=========================")
    print("--- Ingestion Summary ---")
    print("=========================")
    failed = False
    for platform, result in results.items():
        print(f"[{platform.value.upper()}]")
        print(f"Stored:          {result.count}")
        print(f"Skipped:         {result.skipped}")
        print(f"Tokens:          {result.tokens}")
        if not result.success:
            failed = True
            print(f"Error:           {result.error}")
        print("-------------------------")
    return 1 if failed else 0


def run_server(settings: Settings, host: str, port: int) -> int:
    import uvicorn

    from devdigest.api.app import create_app

    uvicorn.run(create_app(settings), host=host, port=port)
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="DevDigest content pipeline")
    sub = parser.add_subparsers(dest="command", required=True)

    fetch = sub.add_parser("fetch", help="Run one ingestion pass")
    fetch.add_argument(
        "--platform",
        choices=[p.value for p in Platform],
        action="append",
        help="Platform to ingest (repeatable). Defaults to every configured platform.",
    )

    serve = sub.add_parser("serve", help="Serve the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    logger.info("DevDigest starting (env=%s)", settings.app_env)

    if args.command == "fetch":
        platforms = [Platform(p) for p in args.platform] if args.platform else None
        return run_fetch(settings, platforms)
    return run_server(settings, args.host, args.port)


if __name__ == "__main__":
    raise SystemExit(main())
