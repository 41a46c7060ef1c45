"""BLE advertisement event sources for RuuviTag collection rounds.

This module turns the push-style advertisement callbacks of the BLE stack
into a pull-style async stream the collector can consume at its own pace.

Architecture:
- EventSource interface enables pluggable sources (BLE, replay, ...)
- The scanner callback is the producer, an unbounded asyncio.Queue the
  hand-off point, and the collector the single consumer
- A ``None`` sentinel on the queue marks end-of-stream, so stopping the source
  always wakes a waiting consumer, even if it has not started waiting yet

Requirements:
- bleak: Cross-platform BLE library for advertisement scanning
- asyncio: Async I/O support for the producer/consumer hand-off
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Iterable, Optional

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from .exceptions import ScannerError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdvertisementEvent:
    """One device-discovered or device-updated notification.

    Attributes:
        address: Sensor address in upper-case ``XX:XX:XX:XX:XX:XX`` form.
        payload: Manufacturer-specific data field: little-endian company id
            followed by the manufacturer data, exactly as broadcast.
    """

    address: str
    payload: bytes


def events_from_advertisement(
    device: BLEDevice, advertisement_data: AdvertisementData
) -> list[AdvertisementEvent]:
    """Split one advertisement into one event per manufacturer data entry.

    Bleak hands manufacturer data over as ``{company_id: data}`` with the
    identifier already stripped; it is re-attached here so decoders see the
    field as broadcast.
    """
    address = device.address.upper()
    return [
        AdvertisementEvent(
            address=address,
            payload=company_id.to_bytes(2, "little") + bytes(data),
        )
        for company_id, data in (advertisement_data.manufacturer_data or {}).items()
    ]


class EventSource(ABC):
    """Abstract base class for advertisement event producers.

    Implementations must make ``events()`` terminate once ``stop()`` has been
    called, and must tolerate ``stop()`` being called more than once.
    """

    @abstractmethod
    async def start(self) -> None:
        """Begin producing events."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop producing events and end the stream."""

    @abstractmethod
    def events(self) -> AsyncIterator[AdvertisementEvent]:
        """Async iterator over events in the order the stack emitted them."""


class BleEventSource(EventSource):
    """Advertisement source backed by a passive-listening ``BleakScanner``.

    Every advertisement (first discovery and later updates alike) is pushed
    onto the queue by the detection callback. Nothing is filtered here: the
    collector decides which addresses and payloads matter.

    Attributes:
        _adapter: Optional adapter name (``hci0`` etc.) passed to bleak.
        _queue: Hand-off queue; ``None`` marks end-of-stream.
        _scanner: Running scanner instance, ``None`` when stopped.
    """

    def __init__(self, adapter: Optional[str] = None) -> None:
        self._adapter = adapter
        self._queue: asyncio.Queue[Optional[AdvertisementEvent]] = asyncio.Queue()
        self._scanner: Optional[BleakScanner] = None
        self._event_count = 0

    def _on_detection(
        self, device: BLEDevice, advertisement_data: AdvertisementData
    ) -> None:
        for event in events_from_advertisement(device, advertisement_data):
            self._event_count += 1
            self._queue.put_nowait(event)

    async def start(self) -> None:
        """Start scanning.

        Raises:
            ScannerError: If the BLE stack refuses to start a scan. The message
                includes troubleshooting guidance for the usual causes.
        """
        if self._scanner is not None:
            return

        kwargs = {}
        if self._adapter:
            kwargs["adapter"] = self._adapter

        scanner = BleakScanner(detection_callback=self._on_detection, **kwargs)
        try:
            await scanner.start()
        except BleakError as e:
            raise ScannerError(
                "BLE scanner initialization failed. Please verify:\n"
                "- Bluetooth is enabled and the adapter is powered\n"
                "- The adapter name is correct (see `bluetoothctl list`)\n"
                "- This user may access the BlueZ D-Bus interface\n"
            ) from e

        self._scanner = scanner
        logger.info("BLE scan started (adapter=%s)", self._adapter or "default")

    async def stop(self) -> None:
        """Stop scanning and end the event stream.

        A scanner that fails to stop is logged rather than raised, so a round
        that already completed keeps its batch.
        """
        scanner, self._scanner = self._scanner, None
        try:
            if scanner is not None:
                await scanner.stop()
                logger.info("BLE scan stopped after %d events", self._event_count)
        except BleakError as e:
            logger.warning("Failed to stop BLE scan cleanly: %s", e)
        finally:
            # Wake the consumer even if stopping the scanner failed
            self._queue.put_nowait(None)

    async def events(self) -> AsyncIterator[AdvertisementEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                logger.debug("End of advertisement stream")
                return
            yield event


class ReplayEventSource(EventSource):
    """Replays a fixed sequence of events, then ends the stream.

    Used for deterministic collection rounds without radio hardware.
    """

    def __init__(self, events: Iterable[AdvertisementEvent]) -> None:
        self._events = list(events)
        self._running = False
        self.consumed = 0

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False

    async def events(self) -> AsyncIterator[AdvertisementEvent]:
        for event in self._events:
            if not self._running:
                return
            self.consumed += 1
            yield event
            # Give other tasks a chance to run, as a live scanner would
            await asyncio.sleep(0)
