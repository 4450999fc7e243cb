import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from bleak import BleakClient, BleakScanner

from .config import (
    BLE_CHUNK_SIZE,
    CHUNK_DELAY_MS,
    CONNECT_TIMEOUT,
    REPLY_GAP_MS,
    SCAN_TIMEOUT,
    UART_RX_UUID,
    UART_TX_UUID,
)

EventCallback = Callable[[Dict[str, Any]], Any]


class DeviceChannel(ABC):
    """Outbound half of the device messaging channel."""

    @abstractmethod
    async def send(self, message: Dict[str, Any]):
        ...


class BleDeviceChannel(DeviceChannel):
    """Newline-delimited JSON over the Nordic UART service of one device."""

    def __init__(self, address: str, on_event: Optional[EventCallback] = None):
        self.address = address
        self.on_event = on_event
        self.client: Optional[BleakClient] = None
        self.rx_buffer = bytearray()
        self.log = logging.getLogger(f"Dev-{address[-5:]}")
        self.last_send_time = 0.0
        # one reply on the wire at a time, chunks of two replies must not interleave
        self.tx_lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return bool(self.client and self.client.is_connected)

    async def run(self):
        self.log.info(f"Connecting to {self.address}...")

        try:
            async with BleakClient(self.address, timeout=CONNECT_TIMEOUT) as client:
                self.client = client
                self.log.info("✓ Connected")

                await client.start_notify(UART_TX_UUID, self.notification_handler)

                # Keep-alive loop
                while client.is_connected:
                    await asyncio.sleep(1.0)

        except Exception as e:
            self.log.error(f"Connection error: {e}")
        finally:
            self.client = None
            self.log.info("Disconnected")

    def notification_handler(self, sender, data: bytearray):
        self.rx_buffer.extend(data)
        while b"\n" in self.rx_buffer:
            idx = self.rx_buffer.index(b"\n")
            line = bytes(self.rx_buffer[:idx])
            del self.rx_buffer[:idx + 1]
            if line.strip():
                self.process_line(line)

    def process_line(self, line: bytes):
        try:
            message = json.loads(line.decode("utf-8"))
        except ValueError as e:
            self.log.error(f"Msg Error: {e}")
            return

        if not isinstance(message, dict):
            self.log.warning(f"Ignoring non-object message: {message!r}")
            return

        self.log.debug(f"RX {message}")
        if self.on_event is not None:
            self.on_event({"payload": message})

    async def send(self, message: Dict[str, Any]):
        if not self.is_connected:
            self.log.warning(f"Not connected, dropping {message}")
            return

        line = frame(message)
        async with self.tx_lock:
            try:
                gap = REPLY_GAP_MS / 1000.0 - (time.time() - self.last_send_time)
                if gap > 0:
                    await asyncio.sleep(gap)
                await self._write_chunks(line)
                self.log.debug(f"TX {message}")
            except Exception as e:
                self.log.error(f"TX Failed: {e}")
            finally:
                self.last_send_time = time.time()

    async def _write_chunks(self, line: bytes):
        for start in range(0, len(line), BLE_CHUNK_SIZE):
            await self.client.write_gatt_char(
                UART_RX_UUID, line[start:start + BLE_CHUNK_SIZE], response=True)
            await asyncio.sleep(CHUNK_DELAY_MS / 1000.0)


def frame(message: Dict[str, Any]) -> bytes:
    return (json.dumps(message) + "\n").encode("utf-8")


async def find_device(name_prefix: str, timeout: float = SCAN_TIMEOUT) -> Optional[str]:
    devices = await BleakScanner.discover(timeout=timeout)
    for dev in devices:
        if dev.name and dev.name.startswith(name_prefix):
            return dev.address
    return None
