"""RoomComfort backend: sensor telemetry, ownership and comfort advice API."""

__version__ = "0.1.0"
