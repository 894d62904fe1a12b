"""Services: bundle payload extraction."""

from marketrelay.services.payload_extractor import (
    PayloadExtractor,
    IotaPayloadExtractor,
    PayloadExtractionError,
    BundleFragment,
    decode_bundle_message,
)

__all__ = [
    "PayloadExtractor",
    "IotaPayloadExtractor",
    "PayloadExtractionError",
    "BundleFragment",
    "decode_bundle_message",
]
