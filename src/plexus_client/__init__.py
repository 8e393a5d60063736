import asyncio
import logging
import sys

import logfire

from . import hub, jsonrpc


async def _run(config: jsonrpc.PlexusConfig):
    async with jsonrpc.PlexusConnection(config) as conn:
        with logfire.span("Smoke test {url=}", url=config.url):
            await hub.smoke_test(hub.Hub(conn))


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(
        description="Checks that a Plexus hub answers a few basic calls"
    )
    parser.add_argument(
        "url",
        nargs="?",
        default=jsonrpc.PlexusConfig.url,
        help="URI of the hub. Examples: ws://127.0.0.1:4444 tcp://localhost:1234 unix:///tmp/plexus.sock",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=jsonrpc.PlexusConfig.connection_timeout,
        help="Seconds allowed for opening the connection",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Logs every message sent and received"
    )
    parser.add_argument(
        "--enable-logfire",
        action="store_true",
        help="Enables sending logs and spans to Logfire",
    )

    args = parser.parse_args()

    if args.enable_logfire:
        logfire.configure(scrubbing=False)
        logging.basicConfig(handlers=[logfire.LogfireLoggingHandler()])
    else:
        logfire.configure(send_to_logfire=False, console=False)
        logging.basicConfig()
    logging.getLogger().setLevel(logging.DEBUG if args.debug else logging.INFO)

    config = jsonrpc.PlexusConfig(
        url=args.url, connection_timeout=args.timeout, debug=args.debug
    )

    logging.info("Starting smoke test", extra={"cliArgs": vars(args)})
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    try:
        loop.run_until_complete(_run(config))
    except (jsonrpc.PlexusConnectionError, jsonrpc.JsonRpcException) as e:
        logging.error("Smoke test failed: %s", e)
        sys.exit(1)
    except (jsonrpc.PlexusError, jsonrpc.NoDataError, ValueError) as e:
        logging.error("Smoke test failed: %s", e, exc_info=True)
        sys.exit(1)
    logging.info("All smoke tests passed")
