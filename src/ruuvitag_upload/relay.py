"""Store-and-forward delivery of batches to the upload sink.

Cached batches are uploaded first, from oldest to newest. If uploading a
cached batch fails, the fresh batch is cached as well and nothing newer is
sent this round, so the sink always receives batches in the order they
were collected. A cached batch is only removed after the sink accepted it.
"""

from __future__ import annotations

import enum
import logging
import sys
from abc import ABC, abstractmethod
from typing import Optional, TextIO

import requests

from .batch_store import BatchStore
from .exceptions import BatchStoreError, DeliveryError
from .models import Batch


logger = logging.getLogger(__name__)


class Outcome(enum.Enum):
    DELIVERED = "delivered"
    CACHED_LOCALLY = "cached_locally"
    FATAL_IO_FAILURE = "fatal_io_failure"


class UploadTarget(ABC):
    """Remote sink accepting one batch per call."""

    @abstractmethod
    def send(self, batch: Batch) -> None:
        """Deliver ``batch``.

        Raises:
            DeliveryError: If the sink could not be reached or rejected it.
        """


class HttpUploadTarget(UploadTarget):
    """POSTs the wire JSON of a batch to a fixed URL.

    Any non-2xx status counts as a failed delivery, the same as a transport
    error.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: Optional[float] = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self._timeout = timeout
        self._session = session or requests.Session()

    def send(self, batch: Batch) -> None:
        try:
            response = self._session.post(
                self.url, json=batch.to_wire(), timeout=self._timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise DeliveryError(f"Upload to {self.url} failed: {e}") from e
        logger.debug("Uploaded %d readings (status=%s)", len(batch), response.status_code)

    def close(self) -> None:
        self._session.close()


class Relay:
    """Routes a freshly collected batch to stdout or through the store to a sink."""

    def __init__(self, store: BatchStore, *, stdout: Optional[TextIO] = None):
        self._store = store
        self._stdout = stdout

    def deliver(self, fresh: Batch, sink: Optional[UploadTarget]) -> Outcome:
        """Deliver ``fresh``, replaying cached batches first.

        Without a sink the batch is written to stdout and neither the store
        nor the network is touched.

        Args:
            fresh: Batch produced by this round's collection.
            sink: Upload target, or None for stdout mode.

        Returns:
            DELIVERED if the fresh batch reached the sink (or stdout),
            CACHED_LOCALLY if it was stored for a later round, and
            FATAL_IO_FAILURE if the store itself failed. In the last case
            the fresh batch has still been cached when that was possible.
        """
        if sink is None:
            out = self._stdout or sys.stdout
            out.write(fresh.to_json() + "\n")
            out.flush()
            return Outcome.DELIVERED

        try:
            drained = self._drain(sink)
        except BatchStoreError as e:
            logger.error("Pending batch store failed: %s", e)
            self._cache_after_fatal(fresh)
            return Outcome.FATAL_IO_FAILURE

        if drained:
            try:
                sink.send(fresh)
                logger.info("Uploaded batch of %d readings", len(fresh))
                return Outcome.DELIVERED
            except DeliveryError as e:
                logger.error("%s", e)

        try:
            self._store.persist(fresh)
        except BatchStoreError as e:
            logger.error("Could not cache undelivered batch: %s", e)
            return Outcome.FATAL_IO_FAILURE
        return Outcome.CACHED_LOCALLY

    def _drain(self, sink: UploadTarget) -> bool:
        """Upload pending batches oldest-first.

        Returns:
            True if every pending batch was delivered (or none existed),
            False if a delivery failed and the drain stopped there.

        Raises:
            BatchStoreError: If listing, reading or removing an entry fails.
        """
        pending = self._store.list_pending()
        if pending:
            logger.info("Uploading %d cached batch(es)", len(pending))

        for entry in pending:
            batch = self._store.load(entry)
            try:
                sink.send(batch)
            except DeliveryError as e:
                logger.error("Cached batch %s not delivered: %s", entry.path.name, e)
                return False
            self._store.remove(entry)
        return True

    def _cache_after_fatal(self, fresh: Batch) -> None:
        try:
            self._store.persist(fresh)
        except BatchStoreError as e:
            logger.error("Could not cache undelivered batch: %s", e)
