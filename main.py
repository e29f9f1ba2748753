"""
main.py — Single entry point.

  python main.py serve                     run the HTTP server until SIGINT/SIGTERM
  python main.py analyse <image> [--report] [--detailed]
                                           analyse one file, print JSON or the report

Architecture:
  asyncio event loop
    └── aiohttp web server  (POST /analyse, POST /report, GET /health)
         └── ClassificationPipeline  (remote AI → colour heuristic)
"""
import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

import config

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    # Log file lives under DATA_DIR
    data_dir = Path(config.DATA_DIR)
    data_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(str(data_dir / "soil_analyzer.log"), encoding="utf-8"),
        ],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


async def serve() -> None:
    from pipeline import build_pipeline
    from web_server import start_web_server

    pipeline = build_pipeline()
    web_runner = await start_web_server(pipeline)

    stop_event = asyncio.Event()

    def _stop(*_):
        logger.info("Shutdown signal received.")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _stop)
        except (NotImplementedError, RuntimeError):
            # Windows doesn't support add_signal_handler for all signals
            pass

    logger.info("✅ Analyzer is running. Press Ctrl+C to stop.")
    await stop_event.wait()

    logger.info("Shutting down…")
    await web_runner.cleanup()
    logger.info("Goodbye.")


async def analyse_file(path: Path, as_report: bool = False, detailed: bool = False) -> int:
    """Analyse one image and print the result. Returns the process exit code."""
    from pipeline import build_pipeline
    from report import build_report

    image = path.read_bytes()
    pipeline = build_pipeline()

    if detailed and not as_report:
        data = await pipeline.analyse_detailed(image, path.name)
        print(json.dumps(data, indent=2, ensure_ascii=False))
        return 1 if data.get("error") else 0

    result = await pipeline.analyse(image, path.name)
    if result.error:
        print(result.error_message, file=sys.stderr)
        return 1
    if as_report:
        print(build_report(result))
    else:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Soil texture analyzer")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("serve", help="Run the HTTP server")

    analyse = commands.add_parser("analyse", help="Analyse a single image file")
    analyse.add_argument("image", type=Path, help="Path to a soil photo")
    analyse.add_argument("--report", action="store_true", help="Print the plain-text report instead of JSON")
    analyse.add_argument("--detailed", action="store_true", help="Include the advice block in the JSON")
    return parser


def main(argv=None) -> int:
    args = build_arg_parser().parse_args(argv)
    configure_logging()

    if args.command == "serve":
        try:
            asyncio.run(serve())
        except KeyboardInterrupt:
            pass
        return 0

    if not args.image.is_file():
        print(f"No such file: {args.image}", file=sys.stderr)
        return 2
    return asyncio.run(analyse_file(args.image, as_report=args.report, detailed=args.detailed))


if __name__ == "__main__":
    sys.exit(main())
