#!/usr/bin/env python3
"""
docker-manager - Main entry point
"""
import argparse
import asyncio
import dataclasses
import logging
import signal
import sys
from pathlib import Path

from utils.config import Settings, env_name, load_settings
from utils.helpers import load_config
from utils.logging_utils import ConsoleFormatter, JsonLineFormatter


def parse_cli_args(argv=None):
    """Parse runtime CLI arguments."""
    parser = argparse.ArgumentParser(description="docker-manager control-plane sidecar")
    parser.add_argument(
        "--config",
        default=None,
        help="Optional YAML config file; environment variables take precedence",
    )
    parser.add_argument(
        "--host",
        default=None,
        help=f"Override listen host ({env_name('host')})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help=f"Override listen port ({env_name('port')})",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        help="Validate and print resolved settings and policy, then exit",
    )
    return parser.parse_args(argv)


def apply_cli_overrides(settings: Settings, args) -> Settings:
    overrides = {}
    if args.host:
        overrides["host"] = str(args.host).strip()
    if args.port is not None:
        if not 1 <= int(args.port) <= 65535:
            raise ValueError(f"--port out of range: {args.port}")
        overrides["port"] = int(args.port)
    return dataclasses.replace(settings, **overrides) if overrides else settings


def print_runtime_summary(settings: Settings, catalog, args) -> None:
    print("✅ Config validation passed")
    print(f"config: {args.config or '(environment only)'}")
    for key, value in settings.to_dict().items():
        print(f"{key}: {value}")
    allowed = [name for name in catalog.names() if catalog.is_allowed(name)]
    denied = [name for name in catalog.names() if not catalog.is_allowed(name)]
    print(f"allowed commands ({len(allowed)}): {', '.join(allowed)}")
    print(f"denied commands ({len(denied)}): {', '.join(denied) or '-'}")


# Configure logging
def setup_logging(settings: Settings):
    """Console text log plus a JSON-lines file log under ``log_dir``."""
    level = getattr(logging, settings.log_level, logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(ConsoleFormatter())
    root.addHandler(console)

    try:
        Path(settings.log_dir).mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(settings.log_path, encoding="utf-8")
    except OSError as e:
        logging.getLogger(__name__).error("File logging disabled, cannot open %s: %s", settings.log_path, e)
    else:
        file_handler.setFormatter(JsonLineFormatter())
        root.addHandler(file_handler)

    # Reduce noise from libraries
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


async def main(argv=None):
    """Main application entry point"""
    args = parse_cli_args(argv)

    # Load configuration
    try:
        file_config = load_config(args.config) if args.config else {}
        settings = apply_cli_overrides(load_settings(file_config=file_config), args)
    except Exception as e:
        print(f"❌ Failed to load configuration: {e}")
        sys.exit(1)

    from core.policy import CommandCatalog, PolicyConfig

    catalog = CommandCatalog(PolicyConfig.from_settings(settings))
    if args.validate_only:
        print_runtime_summary(settings, catalog, args)
        return

    setup_logging(settings)
    logger = logging.getLogger(__name__)

    # Delay heavy imports so --validate-only works without full runtime deps.
    from aiohttp import web
    from core.docker_client import DockerClient
    from core.router import RequestRouter
    from core.sync_scheduler import ShadowSyncScheduler

    client = DockerClient(settings)
    scheduler = ShadowSyncScheduler(client, settings)
    router = RequestRouter(settings, client, catalog, scheduler)

    runner = web.AppRunner(router.create_app(), access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, settings.host, settings.port)
    try:
        await site.start()
    except OSError as e:
        logger.error("Cannot listen on %s:%d: %s", settings.host, settings.port, e)
        await runner.cleanup()
        sys.exit(1)

    logger.info(
        "docker-manager listening",
        extra={
            "scope": "server",
            "meta": {
                "host": settings.host,
                "port": settings.port,
                "docker_bin": settings.docker_bin,
                "tailscale_container": settings.tailscale_container,
                "nginx_container": settings.nginx_container,
                "sync_enabled": settings.sync_enabled,
            },
        },
    )
    scheduler.start()

    # Wait for shutdown signal
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _request_shutdown(sig_num: int):
        logger.info("Received signal %d, shutting down...", sig_num)
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_shutdown, int(sig))
        except NotImplementedError:
            signal.signal(sig, lambda s, _f: _request_shutdown(int(s)))

    await shutdown_event.wait()

    logger.info("Shutting down...")
    await scheduler.stop()
    await runner.cleanup()
    logger.info("✅ Shutdown complete")


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n👋 Interrupted by user")


if __name__ == "__main__":
    run()
