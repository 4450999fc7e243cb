"""WatchDog server.

Keeps the last hour of temperature readings reported by the Arduino over a
serial line and answers the wearable's single-letter commands with
``{"name": <text>}`` JSON, which the relay forwards to the watch face.
"""
import asyncio
import logging
from collections import deque
from typing import Deque, Optional

import serial
from aiohttp import web

from .config import HISTORY_SIZE, LISTEN_PORT, SERIAL_BAUD, SERIAL_TIMEOUT, VALID_RANGE
from .protocol import Command, server_reply

logger = logging.getLogger("WatchDog")

TRIPPED_LINE = "tripped"


def to_fahrenheit(celsius: float) -> float:
    return celsius * 9 / 5 + 32


class TemperatureLog:
    """Bounded history of Celsius readings, newest last."""

    def __init__(self, maxlen: int = HISTORY_SIZE):
        self.readings: Deque[float] = deque(maxlen=maxlen)

    def __len__(self):
        return len(self.readings)

    def add(self, celsius: float):
        self.readings.append(celsius)

    def latest(self) -> Optional[float]:
        return self.readings[-1] if self.readings else None

    def _valid(self):
        lo, hi = VALID_RANGE
        return [t for t in self.readings if lo <= t <= hi]

    def high(self) -> Optional[float]:
        valid = self._valid()
        return max(valid) if valid else None

    def low(self) -> Optional[float]:
        valid = self._valid()
        return min(valid) if valid else None

    def average(self) -> Optional[float]:
        valid = self._valid()
        return sum(valid) / len(valid) if valid else None


class SensorLink:
    """Serial connection to the Arduino."""

    def __init__(self, port: str, baud: int = SERIAL_BAUD, timeout: float = SERIAL_TIMEOUT):
        self.ser = serial.Serial(port=port, baudrate=baud, timeout=timeout)
        self.running = True

    def stop(self):
        """Make a pending readline() return early and end the reader loop."""
        self.running = False
        self.ser.cancel_read()

    def close(self):
        if self.ser and self.ser.is_open:
            self.ser.close()

    def readline(self) -> bytes:
        return self.ser.readline()

    def write(self, command: bytes):
        self.ser.write(command)


class WatchDogState:
    def __init__(self, log: Optional[TemperatureLog] = None, sensor: Optional[SensorLink] = None):
        self.log = log if log is not None else TemperatureLog()
        self.sensor = sensor
        self.unit = "c"
        self.standby = False
        self.tripped = False
        self.sensor_error = False

    # ---- sensor side

    def ingest(self, line: str):
        line = line.strip()
        if not line:
            return
        if line.startswith(TRIPPED_LINE):
            if not self.tripped:
                logger.warning("Motion sensor tripped")
            self.tripped = True
            return
        try:
            self.log.add(float(line))
        except ValueError:
            logger.warning(f"Ignoring sensor line: {line!r}")

    def tell_sensor(self, command: bytes):
        if self.sensor is None:
            logger.debug(f"No sensor attached, not sending {command!r}")
            return
        try:
            self.sensor.write(command)
        except serial.SerialException as e:
            self.sensor_error = True
            logger.error(f"Sensor write failed: {e}")

    # ---- display

    def _display(self, celsius: float) -> float:
        return to_fahrenheit(celsius) if self.unit == "F" else celsius

    def _unavailable(self) -> Optional[str]:
        if self.sensor_error:
            return "Arduino Error!!!"
        if self.log.latest() is None:
            return "No data available."
        return None

    def latest_text(self) -> str:
        problem = self._unavailable()
        if problem:
            return problem
        return f"{self._display(self.log.latest()):.1f} {self.unit}"

    def summary_text(self) -> str:
        problem = self._unavailable()
        if problem:
            return problem
        high, low, avg = self.log.high(), self.log.low(), self.log.average()
        if avg is None:
            return "No data available."
        return (f"H: {self._display(high):.1f} L: {self._display(low):.1f} "
                f"AVG: {self._display(avg):.1f}")

    # ---- commands

    def toggle_unit(self) -> str:
        self.tell_sensor(b"f")
        self.unit = "F" if self.unit == "c" else "c"
        return self.latest_text()

    def toggle_standby(self) -> str:
        self.tell_sensor(b"s")
        self.standby = not self.standby
        return "Standby engaged." if self.standby else "Standby disengaged."

    def show_message(self) -> str:
        self.tell_sensor(b"m")
        return "Message Sent"

    def reset_alarm(self) -> str:
        self.tripped = False
        self.tell_sensor(b"r")
        return "Alarm Reset"

    def trip_status(self) -> str:
        return "tripped" if self.tripped else "nottripped"

    def execute(self, command: Command) -> str:
        handlers = {
            Command.TOGGLE_UNIT: self.toggle_unit,
            Command.LATEST: self.latest_text,
            Command.HIGH_LOW_AVERAGE: self.summary_text,
            Command.MESSAGE: self.show_message,
            Command.RESET_ALARM: self.reset_alarm,
            Command.TOGGLE_STANDBY: self.toggle_standby,
            Command.TRIP_STATUS: self.trip_status,
        }
        return handlers[command]()


STATE_KEY = web.AppKey("state", WatchDogState)


async def handle_command(request: web.Request) -> web.Response:
    state = request.app[STATE_KEY]
    raw = request.match_info["command"]
    peer = request.remote
    logger.info(f"Request from {peer}: /{raw}")

    try:
        command = Command(raw)
    except ValueError:
        return web.Response(status=404)

    text = state.execute(command)
    return web.Response(text=server_reply(text), content_type="application/json")


def create_app(state: WatchDogState) -> web.Application:
    app = web.Application()
    app[STATE_KEY] = state
    app.router.add_get("/{command:.*}", handle_command)
    return app


async def read_sensor(state: WatchDogState, sensor: SensorLink):
    loop = asyncio.get_running_loop()
    while sensor.running:
        try:
            raw = await loop.run_in_executor(None, sensor.readline)
        except (serial.SerialException, OSError) as e:
            if not state.sensor_error:
                logger.error(f"Sensor read failed: {e}")
            state.sensor_error = True
            await asyncio.sleep(1.0)
            continue

        state.sensor_error = False
        if raw:
            state.ingest(raw.decode("ascii", errors="replace"))


async def sensor_reader(app: web.Application):
    state = app[STATE_KEY]
    sensor = state.sensor
    task = asyncio.create_task(read_sensor(state, sensor))
    yield
    # the port is only closed once no executor thread is inside readline()
    sensor.stop()
    await task
    sensor.close()


def serve(serial_port: str, baud: int = SERIAL_BAUD, port: int = LISTEN_PORT):
    try:
        sensor = SensorLink(serial_port, baud)
    except serial.SerialException as e:
        raise SystemExit(f"Couldn't establish a connection with Arduino: {e}")

    state = WatchDogState(sensor=sensor)
    app = create_app(state)
    app.cleanup_ctx.append(sensor_reader)

    logger.info(f"Server configured to listen on port {port}")
    web.run_app(app, port=port, print=None)
