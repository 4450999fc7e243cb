"""Message formats shared by the device, the relay and the WatchDog server.

The device sends ``{"payload": {"hello_msg": <command>}}``. The relay turns
the command into ``GET http://<host>:<port>/<command>`` and the server answers
with JSON like ``{"name": "21.5 c"}``. Whatever the relay makes of that answer
goes back to the device as ``{"0": <text>}``.
"""
import enum
import json
from dataclasses import dataclass
from typing import Any, Dict, Union
from urllib.parse import quote

from yarl import URL

from .config import RelayConfig

REPLY_KEY = "0"
PAYLOAD_FIELD = "hello_msg"

MSG_NO_RESPONSE = "no response"
MSG_NO_NAME = "noname"
MSG_SERVER_ERROR = "Server Error!!!"
MSG_BAD_RESPONSE = "Bad Response!!!"


class BridgeError(Exception):
    pass


class InvalidEventError(BridgeError):
    pass


class Command(str, enum.Enum):
    TOGGLE_UNIT = "a"
    LATEST = "b"
    HIGH_LOW_AVERAGE = "d"
    MESSAGE = "m"
    RESET_ALARM = "r"
    TOGGLE_STANDBY = "s"
    TRIP_STATUS = "t"


class Outcome(enum.Enum):
    NAMED = "named"
    UNNAMED = "unnamed"
    EMPTY = "empty"
    MALFORMED = "malformed"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class RelayResult:
    outcome: Outcome
    message: str

    def reply(self) -> Dict[str, str]:
        return {REPLY_KEY: self.message}


def extract_payload(event: Any) -> str:
    """Pull the ``hello_msg`` string out of an inbound device event."""
    if not isinstance(event, dict):
        raise InvalidEventError(f"event must be a mapping, got {type(event).__name__}")
    payload = event.get("payload")
    if not isinstance(payload, dict):
        raise InvalidEventError("event has no payload mapping")

    value = payload.get(PAYLOAD_FIELD)
    if value is None:
        raise InvalidEventError(f"payload is missing {PAYLOAD_FIELD!r}")
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise InvalidEventError(
            f"{PAYLOAD_FIELD!r} must be a string, got {type(value).__name__}")
    text = str(value)
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        raise InvalidEventError(f"{PAYLOAD_FIELD!r} is not valid UTF-8 text: {text!r}")
    return text


def encode_segment(payload: str) -> str:
    segment = quote(payload, safe="")
    # dot segments would be collapsed by the path resolver
    if segment in (".", ".."):
        segment = segment.replace(".", "%2E")
    return segment


def build_url(config: RelayConfig, payload: str) -> URL:
    return URL.build(
        scheme=config.scheme,
        host=config.host,
        port=config.port,
        path="/" + encode_segment(payload),
        encoded=True,
    )


def _is_falsy(value: Any) -> bool:
    # Empty objects and arrays still count as an answer
    if isinstance(value, (dict, list)):
        return False
    return not value


def parse_response(body: Union[bytes, str]) -> RelayResult:
    """Classify a server response body. Never raises."""
    if not body or not body.strip():
        return RelayResult(Outcome.EMPTY, MSG_NO_RESPONSE)

    try:
        data = json.loads(body)
    except ValueError:
        return RelayResult(Outcome.MALFORMED, MSG_BAD_RESPONSE)

    if _is_falsy(data):
        return RelayResult(Outcome.EMPTY, MSG_NO_RESPONSE)

    if isinstance(data, dict):
        name = data.get("name")
        if not _is_falsy(name):
            return RelayResult(Outcome.NAMED, str(name))
    return RelayResult(Outcome.UNNAMED, MSG_NO_NAME)


def transport_error() -> RelayResult:
    return RelayResult(Outcome.TRANSPORT_ERROR, MSG_SERVER_ERROR)


def server_reply(text: str) -> str:
    """Body the WatchDog server sends for a handled command."""
    return json.dumps({"name": text})
