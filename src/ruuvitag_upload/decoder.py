"""Decoder adapter for RuuviTag manufacturer-specific advertisement data.

The collector only depends on the ``SensorDecoder`` interface; ``RuuviDecoder``
is the production implementation for the RAWv1 (format 3) and RAWv2
(format 5) broadcast formats.

A payload is the complete manufacturer-specific data field as broadcast:
a 16-bit little-endian company identifier followed by the format byte and
the frame body.
"""

from __future__ import annotations

import struct
from abc import ABC, abstractmethod

from .exceptions import DecodeError
from .models import SensorValues


RUUVI_COMPANY_ID = 0x0499

RAWV1_FORMAT = 0x03
RAWV1_LENGTH = 14
RAWV2_FORMAT = 0x05
RAWV2_LENGTH = 24

PRESSURE_OFFSET_PA = 50000
BATTERY_OFFSET_MV = 1600


class SensorDecoder(ABC):
    """Turns a raw advertisement payload into physical quantities."""

    @abstractmethod
    def decode(self, payload: bytes) -> SensorValues:
        """Decode one payload.

        Raises:
            DecodeError: If the payload is not a frame this decoder understands.
        """


class RuuviDecoder(SensorDecoder):
    """Decoder for RuuviTag RAWv1 and RAWv2 frames."""

    def decode(self, payload: bytes) -> SensorValues:
        if len(payload) <= 2:
            raise DecodeError(f"Payload too short: {len(payload)} bytes")

        company_id = payload[0] | (payload[1] << 8)
        if company_id != RUUVI_COMPANY_ID:
            raise DecodeError(f"Unsupported manufacturer id: 0x{company_id:04X}")

        data = bytes(payload[2:])
        data_format = data[0]
        if data_format == RAWV1_FORMAT:
            return self._decode_rawv1(data)
        if data_format == RAWV2_FORMAT:
            return self._decode_rawv2(data)
        raise DecodeError(f"Unsupported data format: {data_format}")

    @staticmethod
    def _decode_rawv1(data: bytes) -> SensorValues:
        if len(data) < RAWV1_LENGTH:
            raise DecodeError(
                f"RAWv1 frame length mismatch: expected {RAWV1_LENGTH}, got {len(data)}"
            )

        _, humidity_raw, temp_int, temp_frac, pressure_raw = struct.unpack(
            ">BBBBH", data[:6]
        )
        (battery_mv,) = struct.unpack(">H", data[12:14])

        # Sign-magnitude: bit 7 is the sign, the rest the whole degrees.
        temperature = (temp_int & 0x7F) + temp_frac / 100.0
        if temp_int & 0x80:
            temperature = -temperature

        return SensorValues(
            humidity=humidity_raw / 2.0,
            temperature=round(temperature, 2),
            pressure=(pressure_raw + PRESSURE_OFFSET_PA) / 1000.0,
            battery_potential=battery_mv / 1000.0,
        )

    @staticmethod
    def _decode_rawv2(data: bytes) -> SensorValues:
        if len(data) < RAWV2_LENGTH:
            raise DecodeError(
                f"RAWv2 frame length mismatch: expected {RAWV2_LENGTH}, got {len(data)}"
            )

        _, temp_raw, humidity_raw, pressure_raw = struct.unpack(">BhHH", data[:7])
        (power_info,) = struct.unpack(">H", data[13:15])
        battery_raw = power_info >> 5

        # Each quantity has a reserved "not available" value.
        temperature = None if temp_raw == -0x8000 else round(temp_raw * 0.005, 3)
        humidity = None if humidity_raw == 0xFFFF else round(humidity_raw * 0.0025, 4)
        pressure = (
            None
            if pressure_raw == 0xFFFF
            else (pressure_raw + PRESSURE_OFFSET_PA) / 1000.0
        )
        battery = (
            None
            if battery_raw == 0x7FF
            else (battery_raw + BATTERY_OFFSET_MV) / 1000.0
        )

        return SensorValues(
            humidity=humidity,
            temperature=temperature,
            pressure=pressure,
            battery_potential=battery,
        )
