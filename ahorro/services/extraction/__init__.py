"""Receipt extraction services package."""

from ahorro.services.extraction.interface import (
    ExtractionGateway,
    GatewayBadResponse,
    GatewayDecodeError,
    GatewayError,
    GatewayUnavailable,
    MissingCredentialError,
    fallback_extraction,
)
from ahorro.services.extraction.gemini_service import (
    GeminiExtractionGateway,
    build_user_prompt,
    decode_extraction,
)

__all__ = [
    "ExtractionGateway",
    "GatewayBadResponse",
    "GatewayDecodeError",
    "GatewayError",
    "GatewayUnavailable",
    "GeminiExtractionGateway",
    "MissingCredentialError",
    "build_user_prompt",
    "decode_extraction",
    "fallback_extraction",
]
