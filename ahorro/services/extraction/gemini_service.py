"""
Receipt Extraction using Gemini

DESIGN DECISION: We use a vision-capable Gemini model because:
1. It reads Chilean boletas and facturas directly from the photo
2. It returns STRUCTURED JSON we can validate with pydantic
3. One call covers merchant, amounts, tax, category and keywords

This service handles:
1. Building the extraction prompt (with the user's note as context)
2. Sending the image inline to Gemini
3. Mapping provider failures to typed gateway errors
4. Validating the JSON answer into a ReceiptExtraction

CRITICAL: No credential configured means the deterministic fallback
extraction, never an error. No retries here: the caller decides whether
to resubmit.
"""

from typing import Any, Optional

import google.generativeai as genai
import structlog
from google.api_core import exceptions as google_exceptions
from pydantic import ValidationError

from ahorro.audit import AuditLogger
from ahorro.config import GeminiSettings, get_settings
from ahorro.models.receipt import ReceiptCategory, ReceiptExtraction
from ahorro.services.extraction.interface import (
    ExtractionGateway,
    GatewayBadResponse,
    GatewayDecodeError,
    GatewayUnavailable,
    MissingCredentialError,
    fallback_extraction,
)


logger = structlog.get_logger(__name__)


SYSTEM_PROMPT = (
    "Eres un asistente financiero que analiza imágenes de boletas y facturas "
    "chilenas. Devuelve un JSON con la estructura solicitada."
)

RESPONSE_FIELDS = (
    '{"title","merchantName","summary","purchaseDate","totalAmount",'
    '"currencyCode","taxAmount","taxRate","category","keywords","tags",'
    '"metadata","locationDescription","location"}'
)


def build_user_prompt(hint: Optional[str]) -> str:
    """Extraction instructions, with the user's note appended as context."""
    categories = ", ".join(category.value for category in ReceiptCategory)
    prompt = (
        "Extrae todos los campos posibles de la boleta. Considera moneda en CLP "
        "cuando no se indique. Devuelve JSON con los campos\n"
        f"{RESPONSE_FIELDS}.\n"
        "purchaseDate en ISO-8601, montos como números, "
        f"category uno de: {categories}. "
        'location como {"latitude", "longitude"} o null.'
    )
    if hint and hint.strip():
        prompt += f"\nContexto del usuario: {hint.strip()}"
    return prompt


def decode_extraction(text: str) -> ReceiptExtraction:
    """
    Validate the provider's text answer into a ReceiptExtraction.

    Models sometimes wrap JSON in prose or code fences, so we decode the
    outermost {...} block.

    Raises:
        GatewayDecodeError: If no valid extraction object is found
    """
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise GatewayDecodeError("Response does not contain a JSON object")

    try:
        extraction = ReceiptExtraction.model_validate_json(text[start:end])
    except ValidationError as e:
        raise GatewayDecodeError(
            f"Response is not a valid extraction: {e.error_count()} error(s)"
        ) from e

    return extraction.model_copy(update={"source": "provider"})


class GeminiExtractionGateway(ExtractionGateway):
    """
    Extraction gateway backed by Gemini.

    IMPORTANT BOUNDARIES:
    1. This gateway ONLY extracts - it never stores anything
    2. Missing or rejected credentials produce the fallback extraction
    3. Every other failure is raised as a typed GatewayError
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model: Optional[Any] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """
        Args:
            settings: Gemini settings (defaults to the environment)
            model: Pre-built model object exposing ``generate_content``;
                   used as-is instead of configuring the SDK
            audit_logger: Receives outages as external service errors
        """
        self._settings = settings or get_settings().gemini
        self._model = model
        self._audit = audit_logger or AuditLogger()

    @property
    def has_credential(self) -> bool:
        return self._model is not None or self._settings.has_credential

    def _get_model(self) -> Any:
        """Get or create the Gemini model."""
        if self._model is None:
            if not self._settings.has_credential:
                raise MissingCredentialError("GEMINI_API_KEY is not configured")
            genai.configure(api_key=self._settings.api_key)
            self._model = genai.GenerativeModel(
                model_name=self._settings.model_name,
                system_instruction=SYSTEM_PROMPT,
                generation_config={
                    "temperature": self._settings.temperature,
                    "max_output_tokens": self._settings.max_tokens,
                    "response_mime_type": "application/json",
                },
            )
        return self._model

    @staticmethod
    def _response_text(response: Any) -> str:
        """Pull the text out of a Gemini response."""
        try:
            text = response.text
        except (ValueError, AttributeError) as e:
            # Blocked or empty candidates make .text raise ValueError
            raise GatewayBadResponse(f"Response has no text content: {e}") from e

        if not text or not text.strip():
            raise GatewayBadResponse("Response text is empty")
        return text

    def analyse(
        self,
        document: bytes,
        mime_type: str,
        hint: Optional[str] = None,
    ) -> ReceiptExtraction:
        """
        Extract receipt data from ``document`` with Gemini.

        Raises:
            GatewayUnavailable: Transport or API failure
            GatewayBadResponse: Empty or blocked response
            GatewayDecodeError: Response is not a valid extraction
        """
        try:
            model = self._get_model()
        except MissingCredentialError:
            logger.info("gemini_not_configured", fallback=True)
            return fallback_extraction(hint)

        contents = [
            build_user_prompt(hint),
            {"mime_type": mime_type, "data": document},
        ]

        try:
            response = model.generate_content(contents)
        except google_exceptions.Unauthenticated as e:
            logger.warning("gemini_unauthenticated", error=str(e), fallback=True)
            return fallback_extraction(hint)
        except google_exceptions.GoogleAPIError as e:
            self._audit.log_external_service_error(service="gemini", error_message=str(e))
            raise GatewayUnavailable(f"Gemini request failed: {e}") from e
        except OSError as e:
            self._audit.log_external_service_error(service="gemini", error_message=str(e))
            raise GatewayUnavailable(f"Could not reach Gemini: {e}") from e

        return decode_extraction(self._response_text(response))
