"""
Headless mount simulator served over TCP.

Point the driver at ``socket://localhost:<port>`` to exercise it without
hardware.
"""

import argparse
import asyncio
import functools
import logging
import sys
import time

from ..config import load_config
from ..model import Site
from .ap_scope import APScope
from .pmc_scope import PMCScope

logger = logging.getLogger(__name__)


async def timer(seconds_to_sleep=1.0, tel=None):
    """Timer loop to trigger physical model updates (ticks)."""
    t = time.monotonic()
    while True:
        await asyncio.sleep(seconds_to_sleep)
        cur_t = time.monotonic()
        if tel:
            tel.tick(cur_t - t)
        t = cur_t


async def report_status(seconds_to_sleep=5.0, tel=None):
    while True:
        await asyncio.sleep(seconds_to_sleep)
        if tel:
            logger.info(tel.status_line())


async def handle_client(scope, reader, writer):
    """Feeds one client's byte stream to ``scope``."""
    peer = writer.get_extra_info("peername")
    logger.info("Client connected from %s", peer)
    try:
        while True:
            data = await reader.read(1024)
            if not data:
                break
            resp = scope.handle_msg(data)
            if resp:
                writer.write(resp)
                await writer.drain()
    except (ConnectionError, OSError) as e:
        logger.warning("Error handling client %s: %s", peer, e)
    finally:
        writer.close()
        logger.info("Connection from %s closed", peer)


def make_scope(family, config):
    obs_cfg = config["observer"]
    sim_cfg = config["simulator"]
    speed = float(sim_cfg.get("slew_speed", 4.0))
    if family == "pmc":
        return PMCScope(slew_speed=speed)
    site = Site(
        float(obs_cfg["latitude"]), float(obs_cfg["longitude"]), float(obs_cfg["elevation"])
    )
    return APScope(site=site, slew_speed=speed)


async def start_simulator(scope, host="", port=0):
    """Serves ``scope`` on TCP and starts its physics and status tasks."""
    tasks = [
        asyncio.create_task(timer(0.1, scope)),
        asyncio.create_task(report_status(5.0, scope)),
    ]
    server = await asyncio.start_server(functools.partial(handle_client, scope), host, port)
    return server, tasks


async def stop_simulator(server, tasks):
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    server.close()
    await server.wait_closed()


async def main_async():
    config = load_config()
    sim_cfg = config["simulator"]
    parser = argparse.ArgumentParser(description="AP / PMC-Eight mount simulator")
    parser.add_argument("-d", "--debug", action="store_true", help="Enable debug logging to stderr")
    parser.add_argument(
        "-f",
        "--family",
        choices=("ap", "pmc"),
        default=sim_cfg.get("family", "ap"),
        help="Controller family to simulate",
    )
    parser.add_argument("-p", "--port", type=int, default=sim_cfg.get("port", 9999), help="TCP port")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    scope = make_scope(args.family, config)
    server, tasks = await start_simulator(scope, port=args.port)
    logger.info("Simulating %s controller on port %d", args.family.upper(), args.port)
    try:
        await server.serve_forever()
    finally:
        await stop_simulator(server, tasks)


def main():
    try:
        asyncio.run(main_async())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
