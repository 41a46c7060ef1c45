"""Readings and batches exchanged between the collector, store and relay.

The wire shape produced here is shared by stdout mode, the upload body and
the cached batch files:

    {
        "<ALIAS>": {
            "address": "XX:XX:XX:XX:XX:XX",
            "timestamp": <seconds since unix epoch>,
            "humidity": <0-100 %> | null,
            "temperature": <Celsius> | null,
            "pressure": <kPa> | null,
            "battery_potential": <volts> | null
        },
        ...
    }
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional


WIRE_FIELDS = ("humidity", "temperature", "pressure", "battery_potential")


@dataclass(frozen=True)
class SensorValues:
    """Physical quantities decoded from one advertisement.

    Every field is optional because a frame may mark a quantity as
    unavailable.

    Attributes:
        humidity: Relative humidity, percent.
        temperature: Temperature, degrees Celsius.
        pressure: Atmospheric pressure, kPa.
        battery_potential: Battery voltage, volts.
    """

    humidity: Optional[float] = None
    temperature: Optional[float] = None
    pressure: Optional[float] = None
    battery_potential: Optional[float] = None


@dataclass(frozen=True)
class Reading:
    """One decoded measurement of one sensor at one point in time."""

    address: str
    timestamp: int
    humidity: Optional[float] = None
    temperature: Optional[float] = None
    pressure: Optional[float] = None
    battery_potential: Optional[float] = None

    @staticmethod
    def new(
        address: str, values: SensorValues, *, now: Optional[float] = None
    ) -> "Reading":
        """Build a reading stamped with the wall-clock time of decoding.

        Args:
            address: Text form of the originating sensor address.
            values: Quantities returned by the decoder.
            now: Override for the capture time, mainly for tests.
        """
        captured = time.time() if now is None else now
        return Reading(
            address=address,
            timestamp=int(captured),
            humidity=values.humidity,
            temperature=values.temperature,
            pressure=values.pressure,
            battery_potential=values.battery_potential,
        )

    def to_wire(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "address": self.address,
            "timestamp": self.timestamp,
        }
        for name in WIRE_FIELDS:
            record[name] = getattr(self, name)
        return record

    @staticmethod
    def from_wire(record: Mapping[str, Any]) -> "Reading":
        """Rebuild a reading from its wire record.

        Raises:
            KeyError: If ``address`` or ``timestamp`` is missing.
            ValueError: If the timestamp or a quantity is not numeric.
        """
        values = {}
        for name in WIRE_FIELDS:
            raw = record.get(name)
            values[name] = None if raw is None else float(raw)
        return Reading(
            address=str(record["address"]),
            timestamp=int(record["timestamp"]),
            **values,
        )


@dataclass(frozen=True)
class Batch:
    """Complete alias → reading mapping for one collection round.

    The mapping is copied and wrapped read-only on construction, so a batch
    cannot change after the collector hands it over.
    """

    readings: Mapping[str, Reading] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "readings", MappingProxyType(dict(self.readings)))

    def __len__(self) -> int:
        return len(self.readings)

    def __iter__(self) -> Iterator[str]:
        return iter(self.readings)

    def __contains__(self, alias: object) -> bool:
        return alias in self.readings

    def __getitem__(self, alias: str) -> Reading:
        return self.readings[alias]

    @property
    def aliases(self) -> list[str]:
        return list(self.readings)

    def to_wire(self) -> dict[str, dict[str, Any]]:
        return {alias: reading.to_wire() for alias, reading in self.readings.items()}

    def to_json(self) -> str:
        """Serialize to the compact JSON form used on stdout, disk and wire."""
        return json.dumps(self.to_wire(), separators=(",", ":"))

    @staticmethod
    def from_wire(data: Mapping[str, Mapping[str, Any]]) -> "Batch":
        if not isinstance(data, Mapping):
            raise ValueError(f"Batch must be a JSON object, got {type(data).__name__}")
        return Batch(
            {str(alias): Reading.from_wire(record) for alias, record in data.items()}
        )

    @staticmethod
    def from_json(text: str) -> "Batch":
        return Batch.from_wire(json.loads(text))
