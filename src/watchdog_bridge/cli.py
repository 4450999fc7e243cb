import argparse
import asyncio
import json
import logging
import sys
import time
from typing import List, Optional

from .bridge import EventBridge
from .channel import BleDeviceChannel, find_device
from .config import (
    DEVICE_NAME_PREFIX,
    LISTEN_PORT,
    REQUEST_TIMEOUT,
    RESTART_DELAY,
    SCAN_TIMEOUT,
    SERIAL_BAUD,
    SERIAL_PORT,
    SERVER_HOST,
    SERVER_PORT,
    RelayConfig,
)
from .dispatcher import RequestDispatcher
from .protocol import InvalidEventError, extract_payload

logger = logging.getLogger("Bridge")


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - [%(name)s] %(message)s",
        datefmt="%H:%M:%S"
    )


def _config_from(args) -> RelayConfig:
    return RelayConfig(host=args.host, port=args.port, timeout=args.timeout)


async def run_relay(config: RelayConfig, address: Optional[str], name_prefix: str):
    logger.info("========================================")
    logger.info("   WatchDog Bridge Started")
    logger.info(f"   Server: {config.base_url}")
    logger.info("========================================")

    while address is None:
        address = await find_device(name_prefix)
        if address is None:
            logger.debug("No device found. Scanning...")
            await asyncio.sleep(SCAN_TIMEOUT)
    logger.info(f"Found device {address}")

    channel = BleDeviceChannel(address)
    bridge = EventBridge(RequestDispatcher(config), channel)
    channel.on_event = bridge.handle_event

    try:
        await channel.run()
    finally:
        await bridge.wait_idle()


async def send_once(config: RelayConfig, payload: str) -> dict:
    result = await RequestDispatcher(config).fetch(payload)
    return result.reply()


def cmd_relay(args):
    config = _config_from(args)
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

    while True:
        try:
            asyncio.run(run_relay(config, args.address, args.name_prefix))
            logger.info(f"Device gone, reconnecting in {RESTART_DELAY:.0f} seconds...")
            time.sleep(RESTART_DELAY)
        except KeyboardInterrupt:
            logger.info("Bridge stopped by user.")
            break
        except Exception as e:
            logger.error(f"BRIDGE CRASHED: {e}")
            logger.info(f"Restarting bridge in {RESTART_DELAY:.0f} seconds...")
            time.sleep(RESTART_DELAY)


def cmd_serve(args):
    from .server import serve

    serve(args.serial_port, baud=args.baud, port=args.listen_port)


def cmd_send(args):
    try:
        payload = extract_payload({"payload": {"hello_msg": args.payload}})
    except InvalidEventError as e:
        raise SystemExit(f"Invalid payload: {e}")
    reply = asyncio.run(send_once(_config_from(args), payload))
    print(json.dumps(reply))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="watchdog-bridge",
        description="Relay wearable commands to the WatchDog server.")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_server_args(p):
        p.add_argument("--host", default=SERVER_HOST, help="WatchDog server address")
        p.add_argument("--port", type=int, default=SERVER_PORT, help="WatchDog server port")
        p.add_argument("--timeout", type=float, default=REQUEST_TIMEOUT,
                       help="request timeout in seconds")

    relay = sub.add_parser("relay", help="relay events from a BLE device")
    add_server_args(relay)
    relay.add_argument("--address", help="device address, skips scanning")
    relay.add_argument("--name-prefix", default=DEVICE_NAME_PREFIX,
                       help="advertised name prefix to scan for")
    relay.set_defaults(func=cmd_relay)

    serve = sub.add_parser("serve", help="run the WatchDog server")
    serve.add_argument("--listen-port", type=int, default=LISTEN_PORT)
    serve.add_argument("--serial-port", default=SERIAL_PORT, help="Arduino serial device")
    serve.add_argument("--baud", type=int, default=SERIAL_BAUD)
    serve.set_defaults(func=cmd_serve)

    send = sub.add_parser("send", help="send one payload and print the reply")
    add_server_args(send)
    send.add_argument("payload")
    send.set_defaults(func=cmd_send)

    return parser


def main(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    args.func(args)
