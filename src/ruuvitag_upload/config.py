"""Run configuration built from command-line arguments and the environment.

Command-line flags take precedence; these environment variables are used
when the matching flag is absent:

    RUUVITAG_UPLOAD_URL       destination URL
    RUUVITAG_UPLOAD_DATA_DIR  directory for cached batches
"""

from __future__ import annotations

import argparse
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Optional

from .batch_store import default_data_dir
from .exceptions import ConfigurationError


URL_ENV = "RUUVITAG_UPLOAD_URL"
DATA_DIR_ENV = "RUUVITAG_UPLOAD_DATA_DIR"

_ADDRESS_RE = re.compile(r"^[0-9A-F]{2}(:[0-9A-F]{2}){5}$")


def parse_sensor(spec: str) -> tuple[str, str]:
    """Split ``ADDRESS[=ALIAS]`` into an upper-case address and an alias.

    The alias defaults to the address as given (upper-cased).

    Raises:
        ConfigurationError: If the address is not six hex octets or the alias
            is empty.
    """
    address, sep, alias = spec.partition("=")
    address = address.strip().upper()
    if not _ADDRESS_RE.match(address):
        raise ConfigurationError(
            f"Invalid sensor address '{spec}': expected XX:XX:XX:XX:XX:XX[=alias]"
        )
    if sep and not alias.strip():
        raise ConfigurationError(f"Empty alias in sensor '{spec}'")
    return address, alias.strip() if sep else address


def build_sensor_table(specs: Iterable[str]) -> dict[str, str]:
    """Build the address → alias table for a run.

    Raises:
        ConfigurationError: On a malformed entry, or when an address or an
            alias appears twice.
    """
    table: dict[str, str] = {}
    seen_aliases: set[str] = set()
    for spec in specs:
        address, alias = parse_sensor(spec)
        if address in table:
            raise ConfigurationError(f"Sensor address listed twice: {address}")
        if alias in seen_aliases:
            raise ConfigurationError(f"Sensor alias listed twice: {alias}")
        table[address] = alias
        seen_aliases.add(alias)
    return table


@dataclass
class UploaderConfig:
    """Everything one invocation needs.

    Attributes:
        sensors: Address → alias table, immutable for the run.
        url: Destination URL, or None to print the batch to stdout.
        data_dir: Directory for cached batches.
        adapter: BLE adapter name, or None for the default adapter.
        scan_timeout: Optional bound on the collection round, seconds.
        upload_timeout: Per-request HTTP timeout, seconds.
        log_level: Logging level name.
        log_file: Optional extra log file.
    """

    sensors: dict[str, str]
    url: Optional[str] = None
    data_dir: Path = field(default_factory=default_data_dir)
    adapter: Optional[str] = None
    scan_timeout: Optional[float] = None
    upload_timeout: Optional[float] = 30.0
    log_level: str = "WARNING"
    log_file: Optional[str] = None

    @classmethod
    def from_args(
        cls,
        args: argparse.Namespace,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "UploaderConfig":
        env = os.environ if environ is None else environ

        url = args.url or env.get(URL_ENV) or None
        data_dir_raw = args.data_dir or env.get(DATA_DIR_ENV)
        data_dir = (
            Path(data_dir_raw).expanduser() if data_dir_raw else default_data_dir()
        )

        for name in ("scan_timeout", "upload_timeout"):
            value = getattr(args, name)
            if value is not None and value <= 0:
                raise ConfigurationError(f"{name} must be > 0, got {value}")

        return cls(
            sensors=build_sensor_table(args.sensor),
            url=url,
            data_dir=data_dir,
            adapter=args.adapter,
            scan_timeout=args.scan_timeout,
            upload_timeout=args.upload_timeout,
            log_level=str(args.log_level).upper(),
            log_file=args.log_file,
        )
