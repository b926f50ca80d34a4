"""RuuviTag discovery over BLE advertisements."""

import logging
import struct
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Set, Tuple

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData

from ruuvitrack.shared.models import Reading

from .identity_filter import normalize_identity

logger = logging.getLogger(__name__)

RUUVI_MANUFACTURER_ID = 0x0499

DATA_FORMAT_RAWV1 = 3
DATA_FORMAT_RAWV2 = 5

_RAWV1 = struct.Struct(">BBBBHhhhH")
_RAWV2 = struct.Struct(">BhHHhhhHBH6s")

# Format 5 "not available" markers
_RAWV2_INVALID_TEMPERATURE = -32768
_RAWV2_INVALID_U16 = 0xFFFF
_RAWV2_INVALID_BATTERY = 0x7FF
_RAWV2_INVALID_MAC = b"\xff" * 6


class RuuviDecodeError(ValueError):
    """Manufacturer data could not be decoded into a reading."""


def _format_mac(raw: bytes) -> str:
    return ":".join(f"{b:02X}" for b in raw)


def decode_rawv1(data: bytes) -> Dict:
    """Decode data format 3 (RAWv1) manufacturer data."""
    if len(data) < _RAWV1.size:
        raise RuuviDecodeError(f"format 3 payload too short ({len(data)} bytes)")

    (
        _,
        humidity_raw,
        temp_byte,
        temp_frac,
        pressure_raw,
        acc_x,
        acc_y,
        acc_z,
        battery,
    ) = _RAWV1.unpack_from(data)

    # Temperature is sign-and-magnitude, not two's complement
    temperature = (temp_byte & 0x7F) + temp_frac / 100.0
    if temp_byte & 0x80:
        temperature = -temperature

    return {
        "data_format": DATA_FORMAT_RAWV1,
        "temperature": round(temperature, 2),
        "humidity": humidity_raw * 0.5,
        "pressure": pressure_raw + 50000,
        "acceleration_x": acc_x,
        "acceleration_y": acc_y,
        "acceleration_z": acc_z,
        "battery_mv": battery,
    }


def decode_rawv2(data: bytes) -> Dict:
    """Decode data format 5 (RAWv2) manufacturer data."""
    if len(data) < _RAWV2.size:
        raise RuuviDecodeError(f"format 5 payload too short ({len(data)} bytes)")

    (
        _,
        temp_raw,
        humidity_raw,
        pressure_raw,
        acc_x,
        acc_y,
        acc_z,
        power_info,
        movement_counter,
        sequence,
        mac,
    ) = _RAWV2.unpack_from(data)

    battery_raw = power_info >> 5
    if temp_raw == _RAWV2_INVALID_TEMPERATURE:
        raise RuuviDecodeError("temperature not available")
    if humidity_raw == _RAWV2_INVALID_U16:
        raise RuuviDecodeError("humidity not available")
    if pressure_raw == _RAWV2_INVALID_U16:
        raise RuuviDecodeError("pressure not available")
    if battery_raw == _RAWV2_INVALID_BATTERY:
        raise RuuviDecodeError("battery voltage not available")

    return {
        "data_format": DATA_FORMAT_RAWV2,
        "temperature": round(temp_raw * 0.005, 3),
        "humidity": round(humidity_raw * 0.0025, 4),
        "pressure": pressure_raw + 50000,
        "acceleration_x": acc_x,
        "acceleration_y": acc_y,
        "acceleration_z": acc_z,
        "battery_mv": battery_raw + 1600,
        "tx_power": (power_info & 0x1F) * 2 - 40,
        "movement_counter": movement_counter,
        "sequence": sequence,
        "mac": None if mac == _RAWV2_INVALID_MAC else _format_mac(mac),
    }


DECODERS = {
    DATA_FORMAT_RAWV1: decode_rawv1,
    DATA_FORMAT_RAWV2: decode_rawv2,
}


def decode_ruuvi_data(data: bytes) -> Dict:
    """Decode Ruuvi manufacturer data (company id already stripped).

    Raises:
        RuuviDecodeError: If the format is unsupported or the payload is invalid.
    """
    if not data:
        raise RuuviDecodeError("empty payload")
    decoder = DECODERS.get(data[0])
    if decoder is None:
        raise RuuviDecodeError(f"unsupported data format {data[0]}")
    return decoder(bytes(data))


def parse_advertisement(
    address: str,
    data: bytes,
    rssi: Optional[int] = None,
    observed_at: Optional[datetime] = None,
) -> Reading:
    """Build a Reading from one Ruuvi advertisement.

    The MAC embedded in format 5 frames wins over the BLE address, which
    is an opaque UUID on some platforms.
    """
    values = decode_ruuvi_data(data)
    identity = normalize_identity(values.pop("mac", None) or address)
    return Reading(
        identity=identity,
        observed_at=observed_at or datetime.now(timezone.utc),
        rssi=rssi,
        **values,
    )


class RuuviScanner:
    """Listens for RuuviTag advertisements and reports decoded readings.

    Callbacks are invoked from bleak's detection callback, which runs on the
    asyncio event loop, so they must not block.
    """

    def __init__(
        self,
        on_reading: Callable[[Reading], None],
        on_found: Optional[Callable[[str], None]] = None,
        on_warning: Optional[Callable[[str], None]] = None,
        scanning_mode: str = "active",
        adapter: Optional[str] = None,
    ):
        """Initialize the scanner.

        Args:
            on_reading: Called for every decoded advertisement.
            on_found: Called the first time an identity is seen.
            on_warning: Called with a diagnostic message for decode or
                hardware problems.
            scanning_mode: bleak scanning mode, "active" or "passive".
            adapter: Bluetooth adapter name (e.g. "hci0"), None for default.
        """
        self.on_reading = on_reading
        self.on_found = on_found
        self.on_warning = on_warning
        self.scanning_mode = scanning_mode
        self.adapter = adapter

        self._scanner: Optional[BleakScanner] = None
        self._seen: Set[str] = set()
        self._warned: Set[Tuple[str, str]] = set()

    @property
    def seen(self) -> Set[str]:
        return set(self._seen)

    def _warn(self, address: str, message: str) -> None:
        key = (address, message)
        if key in self._warned:
            return
        self._warned.add(key)
        if self.on_warning is not None:
            self.on_warning(f"{address}: {message}")

    def handle_advertisement(self, device: BLEDevice, advertisement: AdvertisementData) -> None:
        """bleak detection callback."""
        data = advertisement.manufacturer_data.get(RUUVI_MANUFACTURER_ID)
        if data is None:
            return

        try:
            reading = parse_advertisement(device.address, data, rssi=advertisement.rssi)
        except RuuviDecodeError as e:
            self._warn(normalize_identity(device.address), str(e))
            return

        if reading.identity not in self._seen:
            self._seen.add(reading.identity)
            if self.on_found is not None:
                self.on_found(reading.identity)

        self.on_reading(reading)

    async def start(self) -> None:
        """Start scanning. Errors from the BLE stack propagate to the caller."""
        kwargs = {"scanning_mode": self.scanning_mode}
        if self.adapter:
            kwargs["adapter"] = self.adapter

        self._scanner = BleakScanner(detection_callback=self.handle_advertisement, **kwargs)
        logger.info(f"Starting BLE scan ({self.scanning_mode} mode)")
        await self._scanner.start()

    async def stop(self) -> None:
        if self._scanner is None:
            return
        try:
            await self._scanner.stop()
        except Exception as e:
            if self.on_warning is not None:
                self.on_warning(f"Error stopping BLE scanner: {e}")
        finally:
            self._scanner = None
        logger.info(f"BLE scan stopped, saw {len(self._seen)} RuuviTags")
