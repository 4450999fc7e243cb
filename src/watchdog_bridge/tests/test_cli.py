from unittest import IsolatedAsyncioTestCase, TestCase

from aiohttp import test_utils

from watchdog_bridge.cli import build_parser, cmd_relay, cmd_send, cmd_serve, send_once
from watchdog_bridge.config import RelayConfig, SERVER_HOST, SERVER_PORT

from .test_dispatcher import FakeWatchDog


class ParserTests(TestCase):
    def test_defaults_are_the_fixed_address(self):
        args = build_parser().parse_args(["send", "b"])
        self.assertIs(args.func, cmd_send)
        self.assertEqual((args.host, args.port, args.payload), (SERVER_HOST, SERVER_PORT, "b"))

    def test_overrides(self):
        args = build_parser().parse_args(
            ["-v", "relay", "--host", "127.0.0.1", "--port", "8080", "--address", "AA:BB"])
        self.assertIs(args.func, cmd_relay)
        self.assertTrue(args.verbose)
        self.assertEqual((args.host, args.port, args.address), ("127.0.0.1", 8080, "AA:BB"))

        args = build_parser().parse_args(["serve", "--serial-port", "/dev/ttyACM0"])
        self.assertIs(args.func, cmd_serve)
        self.assertEqual(args.serial_port, "/dev/ttyACM0")

    def test_send_rejects_unencodable_payload(self):
        args = build_parser().parse_args(["send", "\udcff", "--port", "1"])
        with self.assertRaises(SystemExit):
            cmd_send(args)

    def test_command_required(self):
        with self.assertRaises(SystemExit):
            build_parser().parse_args([])


class SendOnceTests(IsolatedAsyncioTestCase):
    async def test_prints_reply(self):
        watchdog = FakeWatchDog()
        watchdog.responses["/t"] = (200, b'{"name": "nottripped"}')
        server = test_utils.TestServer(watchdog.app())
        await server.start_server()
        try:
            reply = await send_once(RelayConfig(host=server.host, port=server.port), "t")
        finally:
            await server.close()
        self.assertEqual(reply, {"0": "nottripped"})
