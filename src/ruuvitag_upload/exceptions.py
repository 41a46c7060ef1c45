"""Exception hierarchy for the RuuviTag uploader.

All errors share ``UploaderError`` so the CLI can catch broadly, while the
collector and relay catch precisely:

    except DecodeError: ...      # one bad advertisement, keep scanning
    except DeliveryError: ...    # sink unreachable, cache the batch
    except BatchStoreError: ...  # local storage broken, fatal
"""


class UploaderError(Exception):
    """Base class for all uploader errors."""


class ConfigurationError(UploaderError, ValueError):
    """Raised when the sensor table or other settings are invalid."""


class DecodeError(UploaderError, ValueError):
    """Raised when an advertisement payload is not a decodable sensor frame."""


class CollectionError(UploaderError):
    """Raised when a collection round cannot produce a complete batch."""


class ScannerError(CollectionError):
    """Raised when the BLE scanner cannot be started."""


class DeliveryError(UploaderError):
    """Raised when the remote sink did not accept a batch."""


class BatchStoreError(UploaderError):
    """Raised when the durable batch store cannot be read or written."""
