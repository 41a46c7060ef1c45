from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional, TextIO

from .batch_store import BatchStore
from .collector import collect_batch
from .config import DATA_DIR_ENV, URL_ENV, UploaderConfig
from .decoder import RuuviDecoder, SensorDecoder
from .exceptions import CollectionError, ConfigurationError
from .logging_setup import setup_logging
from .relay import HttpUploadTarget, Outcome, Relay, UploadTarget
from .scanner import BleEventSource, EventSource

__version__ = "0.3.0"

logger = logging.getLogger(__name__)

DESCRIPTION = """\
Collect one measurement from each of a set of RuuviTag sensors and upload
them as JSON. Without --url the measurements are written to stdout.

If uploading fails the measurements are cached and uploaded on the next
run, oldest first, before the new measurements. A cached batch is removed
once the server accepted it, so no measurement is lost.
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ruuvitag-upload",
        description=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "sensor",
        nargs="+",
        help="Sensor address, optionally with an alias: XX:XX:XX:XX:XX:XX[=mysensor]",
    )
    parser.add_argument(
        "-u",
        "--url",
        default=None,
        help=f"Where the measurements are uploaded to (env: {URL_ENV}). "
        "If omitted, measurements are written to stdout.",
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help=f"Directory for cached measurements (env: {DATA_DIR_ENV})",
    )
    parser.add_argument(
        "--adapter", default=None, help="BLE adapter to scan with, e.g. hci0"
    )
    parser.add_argument(
        "--scan-timeout",
        type=float,
        default=None,
        help="Give up if not all sensors reported within this many seconds "
        "(default: wait indefinitely)",
    )
    parser.add_argument(
        "--upload-timeout",
        type=float,
        default=30.0,
        help="HTTP request timeout in seconds (default: 30)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"],
        help="Log level (default: WARNING)",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write logs to this file (default: stderr only)",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def run(
    config: UploaderConfig,
    *,
    source: Optional[EventSource] = None,
    decoder: Optional[SensorDecoder] = None,
    sink: Optional[UploadTarget] = None,
    stdout: Optional[TextIO] = None,
) -> int:
    """Collect one batch and relay it.

    Args:
        config: Run configuration.
        source: Event source; defaults to a BLE scanner on ``config.adapter``.
        decoder: Payload decoder; defaults to ``RuuviDecoder``.
        sink: Upload target; defaults to an HTTP target when ``config.url``
            is set, otherwise the batch goes to stdout.
        stdout: Stream for stdout mode.

    Returns:
        int: Exit code. 0 when the batch was delivered or cached, 1 when it
        could not be collected or stored.
    """
    source = source or BleEventSource(adapter=config.adapter)
    decoder = decoder or RuuviDecoder()

    logger.info("Collecting %d sensor(s)", len(config.sensors))
    try:
        batch = asyncio.run(
            collect_batch(config.sensors, source, decoder, timeout=config.scan_timeout)
        )
    except CollectionError as e:
        logger.error("Collection failed: %s", e)
        return 1
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

    owned_sink: Optional[HttpUploadTarget] = None
    if sink is None and config.url:
        owned_sink = HttpUploadTarget(config.url, timeout=config.upload_timeout)
        sink = owned_sink

    try:
        outcome = Relay(BatchStore(config.data_dir), stdout=stdout).deliver(batch, sink)
    finally:
        if owned_sink is not None:
            owned_sink.close()

    if outcome is Outcome.FATAL_IO_FAILURE:
        return 1
    if outcome is Outcome.CACHED_LOCALLY:
        logger.warning("Upload failed; measurements cached in %s", config.data_dir)
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    try:
        config = UploaderConfig.from_args(args)
    except ConfigurationError as e:
        logger.error("%s", e)
        raise SystemExit(2)

    try:
        code = run(config)
    except KeyboardInterrupt:
        # SIGINT: Return 130 by convention
        code = 130
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        code = 1
    raise SystemExit(code)
