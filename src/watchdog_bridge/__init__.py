"""Bridge between a wearable device and the WatchDog temperature server."""

__version__ = "0.1.0"
