"""Core data models for sensor readings."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Reading:
    """A single decoded RuuviTag advertisement.

    The first six fields are what gets forwarded. The rest are decoded
    extras kept for logging and diagnostics.
    """
    identity: str
    temperature: float
    humidity: float
    pressure: float
    battery_mv: int
    observed_at: datetime
    data_format: Optional[int] = None
    rssi: Optional[int] = None
    tx_power: Optional[int] = None
    movement_counter: Optional[int] = None
    sequence: Optional[int] = None
    acceleration_x: Optional[int] = None
    acceleration_y: Optional[int] = None
    acceleration_z: Optional[int] = None

    def summary(self) -> str:
        """Short human-readable description for log lines."""
        return (
            f"temperature: {self.temperature:.2f} °C "
            f"humidity: {self.humidity:.2f} % "
            f"battery: {self.battery_mv} mV"
        )
