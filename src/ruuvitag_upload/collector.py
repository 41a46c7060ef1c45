"""Collection round: turn an advertisement stream into one complete batch.

The collector is a pure state machine over its input stream. It owns the
in-progress batch exclusively; the event source only delivers raw events,
and completion is derived from the batch size alone.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Mapping, Optional

from .decoder import SensorDecoder
from .exceptions import CollectionError, DecodeError
from .models import Batch, Reading
from .scanner import AdvertisementEvent, EventSource


logger = logging.getLogger(__name__)


async def collect(
    expected: Mapping[str, str],
    events: AsyncIterator[AdvertisementEvent],
    decoder: SensorDecoder,
) -> Batch:
    """Consume events until every expected sensor has one reading.

    Undecodable payloads and foreign addresses are dropped. A later reading
    for an alias replaces the earlier one, since the first advertisement
    seen for a device may be partial or stale.

    Args:
        expected: Address → alias table. Addresses must be in the same text
            form the event source emits.
        events: Async iterator of advertisement events.
        decoder: Decoder applied to every event payload.

    Returns:
        Batch with exactly one reading per alias in ``expected``.

    Raises:
        CollectionError: If the stream ends before the batch is complete.
    """
    readings: dict[str, Reading] = {}

    # Nothing to wait for; never touch the stream
    if not expected:
        return Batch(readings)

    async for event in events:
        try:
            values = decoder.decode(event.payload)
        except DecodeError as ex:
            logger.debug("Skipping payload from %s: %s", event.address, ex)
            continue

        alias = expected.get(event.address)
        if alias is None:
            continue

        if alias not in readings:
            logger.info(
                "Sensor %s (%s) reported (%d/%d)",
                alias,
                event.address,
                len(readings) + 1,
                len(expected),
            )
        readings[alias] = Reading.new(event.address, values)

        if len(readings) == len(expected):
            return Batch(readings)

    missing = sorted(set(expected.values()) - set(readings))
    raise CollectionError(
        f"Advertisement stream ended before all sensors reported; missing: {', '.join(missing)}"
    )


async def collect_batch(
    expected: Mapping[str, str],
    source: EventSource,
    decoder: SensorDecoder,
    timeout: Optional[float] = None,
) -> Batch:
    """Run one collection round against ``source``.

    The source is always stopped afterwards, whether the round completed,
    failed or timed out.

    Args:
        expected: Address → alias table.
        source: Event source to start, consume and stop.
        decoder: Decoder applied to every event payload.
        timeout: Optional upper bound in seconds for the whole round. None
            waits indefinitely.

    Raises:
        CollectionError: If the stream ended early or the timeout expired.
    """
    if not expected:
        return Batch({})

    await source.start()
    try:
        round_ = collect(expected, source.events(), decoder)
        if timeout is None:
            return await round_
        try:
            return await asyncio.wait_for(round_, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise CollectionError(
                f"Not all sensors reported within {timeout:.1f}s"
            ) from e
    finally:
        await source.stop()
