"""
helpers.py

Shared builders for unit tests: canned RuuviTag payloads, events, batches
and recording upload targets. Nothing here needs radio hardware or network
access.
"""

import struct

from ruuvitag_upload.decoder import RUUVI_COMPANY_ID
from ruuvitag_upload.exceptions import DeliveryError
from ruuvitag_upload.models import Batch, Reading
from ruuvitag_upload.relay import UploadTarget
from ruuvitag_upload.scanner import AdvertisementEvent


RUUVI_PREFIX = RUUVI_COMPANY_ID.to_bytes(2, "little")

# RAWv2 reference frame: 24.3 C, 53.49 %, 100.044 kPa, 2.977 V
RAWV2_VALID = bytes.fromhex("0512FC5394C37C0004FFFC040CAC364200CDCBB8334C884F")


def rawv2_payload(
    temperature: float = 21.5,
    humidity: float = 45.0,
    pressure_pa: int = 101325,
    battery_mv: int = 2977,
) -> bytes:
    """Build a complete manufacturer data field carrying a RAWv2 frame."""
    power_info = ((battery_mv - 1600) << 5) | 0x0C
    data = struct.pack(
        ">BhHHhhhHBH",
        5,
        int(round(temperature / 0.005)),
        int(round(humidity / 0.0025)),
        pressure_pa - 50000,
        0,
        0,
        1000,
        power_info,
        0,
        0,
    ) + bytes(6)
    return RUUVI_PREFIX + data


def event(address: str, **kwargs) -> AdvertisementEvent:
    return AdvertisementEvent(address=address, payload=rawv2_payload(**kwargs))


def foreign_event(address: str) -> AdvertisementEvent:
    # Apple iBeacon-style manufacturer data
    return AdvertisementEvent(address=address, payload=b"\x4c\x00\x02\x15" + bytes(21))


def make_batch(alias: str = "sauna", temperature: float = 80.0, timestamp: int = 1600000000) -> Batch:
    return Batch(
        {
            alias: Reading(
                address="AA:BB:CC:DD:EE:01",
                timestamp=timestamp,
                humidity=10.0,
                temperature=temperature,
                pressure=100.5,
                battery_potential=2.9,
            )
        }
    )


class RecordingTarget(UploadTarget):
    """Upload target that records batches and fails on demand."""

    def __init__(self, fail_on=()):
        self.sent = []
        self.attempts = 0
        self._fail_on = set(fail_on)

    def send(self, batch):
        self.attempts += 1
        if self.attempts in self._fail_on:
            raise DeliveryError(f"attempt {self.attempts} refused")
        self.sent.append(batch)


class UnreachableTarget(UploadTarget):
    def __init__(self):
        self.attempts = 0

    def send(self, batch):
        self.attempts += 1
        raise DeliveryError("connection refused")


