"""
Built-in simulated verification services.

Canned responses for the liveness, card capture and scanner endpoints used
by the node templates, plus the legacy /idmscan aliases.
"""

from typing import Any, Dict
import secrets

from idflow.endpoints.registry import register_endpoint


def _session_id(prefix: str) -> str:
    return f"{prefix}_{secrets.token_hex(5)[:9]}"


@register_endpoint("/jdmscan/liveness", "/idmscan/liveness")
def liveness_check(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Face liveness detection on a selfie capture."""
    return {
        "livenessScore": 0.95,
        "faceDetected": True,
        "quality": "high",
        "landmarks": 68,
        "sessionId": _session_id("live"),
    }


@register_endpoint("/ml/document", "/idmscan/card-capture")
def card_capture(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Identity document capture and text extraction."""
    return {
        "cardType": "driver_license",
        "extractedText": {
            "name": "John Doe",
            "dateOfBirth": "1990-01-01",
            "idNumber": "DL123456789",
        },
        "confidence": 0.92,
        "metadataIndex": payload.get("metadataIndex"),
        "sessionId": _session_id("card"),
    }


@register_endpoint("/jdmscan/scanner")
def document_scanner(payload: Dict[str, Any]) -> Dict[str, Any]:
    """MRZ or barcode scanning of a captured document."""
    card = payload.get("previousStepResult") or {}
    extracted = card.get("extractedText", {}) if isinstance(card, dict) else {}
    return {
        "scanType": "mrz",
        "mrzValid": True,
        "documentNumber": extracted.get("idNumber", "DL123456789"),
        "matchesCapture": bool(extracted),
        "confidence": 0.89,
        "sessionId": _session_id("scan"),
    }
