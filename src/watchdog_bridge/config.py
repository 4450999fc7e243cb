from dataclasses import dataclass

# WatchDog server address, same port the server is started with
SERVER_HOST = "10.0.0.4"
SERVER_PORT = 3002
SERVER_SCHEME = "http"

# Transport timeout for a single relay request (in secs)
REQUEST_TIMEOUT = 10.0

DEVICE_NAME_PREFIX = "WatchDog"  # BLE device name prefix
CONNECT_TIMEOUT = 20.0
SCAN_TIMEOUT = 5.0
RESTART_DELAY = 5.0

# Nordic UART Service UUIDs
UART_SERVICE_UUID = "6E400001-B5A3-F393-E0A9-E50E24DCCA9E"
UART_RX_UUID = "6E400002-B5A3-F393-E0A9-E50E24DCCA9E"
UART_TX_UUID = "6E400003-B5A3-F393-E0A9-E50E24DCCA9E"

# Chunk settings
BLE_CHUNK_SIZE = 20
CHUNK_DELAY_MS = 20
REPLY_GAP_MS = 50  # minimum pause between two replies

# WatchDog server side
LISTEN_PORT = 3002
SERIAL_PORT = "/dev/cu.usbmodem1451"
SERIAL_BAUD = 9600
SERIAL_TIMEOUT = 1.0
HISTORY_SIZE = 3600  # one hour of readings at 1 Hz
VALID_RANGE = (-200.0, 200.0)  # plausible Celsius readings


@dataclass(frozen=True)
class RelayConfig:
    """Where the relay sends its requests."""

    host: str = SERVER_HOST
    port: int = SERVER_PORT
    scheme: str = SERVER_SCHEME
    timeout: float = REQUEST_TIMEOUT

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"
