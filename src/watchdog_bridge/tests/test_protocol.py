import json
from unittest import TestCase

from watchdog_bridge.config import RelayConfig
from watchdog_bridge.protocol import (
    MSG_BAD_RESPONSE,
    MSG_NO_NAME,
    MSG_NO_RESPONSE,
    MSG_SERVER_ERROR,
    InvalidEventError,
    Outcome,
    build_url,
    extract_payload,
    parse_response,
    transport_error,
)


class ExtractPayload(TestCase):
    def test_hello_msg(self):
        self.assertEqual(extract_payload({"payload": {"hello_msg": "b"}}), "b")

    def test_number_is_stringified(self):
        self.assertEqual(extract_payload({"payload": {"hello_msg": 7}}), "7")

    def test_invalid_events(self):
        for event in (
            None,
            "b",
            {},
            {"payload": "b"},
            {"payload": {}},
            {"payload": {"hello_msg": None}},
            {"payload": {"hello_msg": ["b"]}},
            {"payload": {"hello_msg": True}},
            {"payload": json.loads('{"hello_msg": "\\ud800"}')},
        ):
            with self.subTest(event=event):
                with self.assertRaises(InvalidEventError):
                    extract_payload(event)


class BuildUrl(TestCase):
    def setUp(self):
        self.config = RelayConfig(host="10.0.0.4", port=3002)

    def test_plain_payloads(self):
        for payload in ("a", "b", "d", "temp-1", "x_y.z~"):
            with self.subTest(payload=payload):
                url = build_url(self.config, payload)
                self.assertEqual(str(url), "http://10.0.0.4:3002/" + payload)

    def test_empty_payload_is_root(self):
        self.assertEqual(str(build_url(self.config, "")), "http://10.0.0.4:3002/")

    def test_metacharacters_stay_in_one_segment(self):
        url = build_url(self.config, "b/../admin?x=1#frag")
        self.assertEqual(url.raw_path, "/b%2F..%2Fadmin%3Fx%3D1%23frag")
        self.assertEqual(url.query_string, "")
        self.assertEqual(url.fragment, "")

    def test_dot_segments_are_encoded(self):
        self.assertEqual(build_url(self.config, "..").raw_path, "/%2E%2E")
        self.assertEqual(build_url(self.config, ".").raw_path, "/%2E")

    def test_uses_configured_address(self):
        config = RelayConfig(host="127.0.0.1", port=8080, scheme="https")
        self.assertEqual(str(build_url(config, "t")), "https://127.0.0.1:8080/t")


class ParseResponse(TestCase):
    def test_name(self):
        result = parse_response(b'{"name": "Alice"}')
        self.assertEqual(result.outcome, Outcome.NAMED)
        self.assertEqual(result.reply(), {"0": "Alice"})

    def test_server_formatted_name(self):
        result = parse_response('{\n"name":"21.5 c"\n}\n')
        self.assertEqual(result.reply(), {"0": "21.5 c"})

    def test_non_string_name(self):
        self.assertEqual(parse_response(b'{"name": 42}').message, "42")

    def test_without_name(self):
        for body in (b"{}", b'{"other": 1}', b'{"name": ""}', b'{"name": null}', b"[]", b"5", b'"hi"'):
            with self.subTest(body=body):
                result = parse_response(body)
                self.assertEqual(result.outcome, Outcome.UNNAMED)
                self.assertEqual(result.reply(), {"0": MSG_NO_NAME})

    def test_empty(self):
        for body in (b"", "", b"   \n", b"null", b"false", b"0", b'""'):
            with self.subTest(body=body):
                result = parse_response(body)
                self.assertEqual(result.outcome, Outcome.EMPTY)
                self.assertEqual(result.reply(), {"0": MSG_NO_RESPONSE})

    def test_malformed(self):
        for body in (b"not json", b'{"name": ', b"\x80abc"):
            with self.subTest(body=body):
                result = parse_response(body)
                self.assertEqual(result.outcome, Outcome.MALFORMED)
                self.assertEqual(result.reply(), {"0": MSG_BAD_RESPONSE})

    def test_transport_error(self):
        result = transport_error()
        self.assertEqual(result.outcome, Outcome.TRANSPORT_ERROR)
        self.assertEqual(result.reply(), {"0": MSG_SERVER_ERROR})
