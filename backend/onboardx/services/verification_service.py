"""
Verification Service — Document authenticity and face liveness/match.

Both checks are delegated to a vision-capable completion model that is
told to answer with a strict JSON object. Replies are often wrapped in
prose or code fences, so the first balanced ``{...}`` block is parsed.

Failure modes are kept apart:
- the call itself fails (HTTP error, network)  -> ``VerificationUnavailable``
- the call succeeds but the reply is unusable  -> ``None``
"""
import json
from typing import Any, Dict, Optional

from pydantic import ValidationError

from onboardx.config import get_settings
from onboardx.exceptions import UpstreamError, VerificationUnavailable
from onboardx.schemas.schemas import DocumentVerificationResult, FaceVerificationResult
from onboardx.services.ai_gateway import CompletionClient, get_completion_client, image_message
from onboardx.utils.logger import log_event
from onboardx.utils.validators import validate_pan

DOCUMENT_SYSTEM_PROMPT = (
    "You are a forensic document examiner for Indian KYC documents "
    "(PAN card, Aadhaar card, Driving Licence, Passport, Voter ID). "
    "You never guess: when something is not visible you say so."
)

DOCUMENT_JSON_SHAPE = """{
  "documentType": string,
  "isAuthentic": boolean,
  "confidenceScore": integer 0-100,
  "tamperedAreas": [string],
  "formatValid": boolean,
  "securityFeatures": {"detected": [string], "missing": [string]},
  "extractedData": {"name": string|null, "idNumber": string|null, "dob": string|null, "gender": string|null},
  "qrConsistent": boolean|null,
  "riskFlags": [string],
  "overallVerdict": "GENUINE" | "SUSPICIOUS" | "LIKELY_FAKE",
  "reason": string (max 30 words)
}"""

FACE_SYSTEM_PROMPT = """You are a face verification AI. Analyse:
1. LIVENESS: Is the selfie a live real person (not a photo of a photo, screen, mask, or printed image)?
2. MATCH: If a document image is provided, does the face in the selfie match the face in the document?

Respond ONLY with a raw JSON object (no markdown, no code blocks):
{ "liveness": boolean, "match": boolean | null, "reason": string (max 25 words) }"""

FACE_MATCH_INSTRUCTION = (
    "The first image is a live selfie of the user and the second image is the uploaded ID document. "
    "1) Liveness check - is the selfie a real person (not a photo of a photo, screen, or mask)? "
    "2) Face match - does the face in the selfie match the photo on the ID document? "
    'Reply ONLY in this exact JSON format (no markdown): '
    '{"liveness": true/false, "match": true/false, "reason": "short explanation"}'
)

FACE_LIVENESS_INSTRUCTION = (
    "This is a live selfie. Check if it's a real live person "
    "(not a photo of a photo, screen print, or mask). "
    'Reply ONLY in this exact JSON format (no markdown): '
    '{"liveness": true/false, "match": null, "reason": "short explanation"}'
)

DEFAULT_FACE_REASON = "Verification complete."


def extract_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Parse the first balanced ``{...}`` block in ``text``.

    Braces inside JSON strings are ignored. Returns None when no block is
    found or the block is not a valid JSON object.
    """
    if not text:
        return None
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                try:
                    parsed = json.loads(text[start:index + 1])
                except json.JSONDecodeError:
                    return None
                return parsed if isinstance(parsed, dict) else None
    # never closed
    return None


def build_document_prompt(qr_payload: Optional[str] = None, pan_number: Optional[str] = None) -> str:
    """Instruction sent alongside the document image."""
    lines = [
        "Examine the attached identity document image and report on it.",
        "1. CLASSIFY the document type (PAN, Aadhaar, Driving Licence, Passport, Voter ID, Other).",
        "2. TAMPERING: look for edited text, mismatched fonts, pasted photos, cloned regions, "
        "inconsistent lighting or compression around fields. List every suspicious area.",
        "3. LAYOUT & SECURITY: check the official layout, emblem, hologram, microprint, "
        "guilloche patterns and photo placement. List detected and missing features.",
    ]
    if qr_payload:
        lines.append(
            "4. QR CROSS-CHECK: the QR code on this document decodes to the payload below. "
            "Set qrConsistent to true only if its name/ID/DOB agree with the printed text.\n"
            f"QR PAYLOAD: {qr_payload[:2000]}"
        )
    else:
        lines.append("4. QR CROSS-CHECK: no QR payload is available; set qrConsistent to null.")
    if pan_number:
        lines.append(
            f"5. The user states their PAN is {pan_number.strip().upper()}. "
            "Flag a risk if the printed PAN differs."
        )
    lines.append(
        "Respond ONLY with a raw JSON object (no markdown, no prose) of exactly this shape:\n"
        + DOCUMENT_JSON_SHAPE
    )
    return "\n".join(lines)


def parse_document_reply(text: Optional[str]) -> Optional[DocumentVerificationResult]:
    data = extract_json_object(text)
    if data is None:
        return None
    try:
        return DocumentVerificationResult.model_validate(data)
    except ValidationError as exc:
        log_event("verification", f"Document reply did not match schema: {exc.error_count()} errors")
        return None


def parse_face_reply(text: Optional[str], has_reference: bool) -> Optional[FaceVerificationResult]:
    """Lenient reading of a face-check reply.

    Missing or non-boolean ``liveness``/``match`` count as passed; only an
    explicit ``false`` fails a check. ``match`` is None without a reference.
    """
    data = extract_json_object(text)
    if data is None:
        return None
    liveness = data.get("liveness") is not False
    match = (data.get("match") is not False) if has_reference else None
    reason = data.get("reason")
    return FaceVerificationResult(
        liveness=liveness,
        match=match,
        reason=reason if isinstance(reason, str) and reason.strip() else DEFAULT_FACE_REASON,
    )


class VerificationService:
    """Vision-model backed document and face checks."""

    def __init__(self, client: Optional[CompletionClient] = None, model: Optional[str] = None):
        self.client = client or get_completion_client()
        self.model = model or get_settings().VISION_MODEL

    async def _ask(self, messages, label: str) -> str:
        try:
            return await self.client.complete(messages, model=self.model)
        except UpstreamError as exc:
            log_event("verification", f"{label} call failed with HTTP {exc.status_code}")
            raise VerificationUnavailable(exc.status_code, f"{label} verification unavailable") from exc

    async def verify_document(
        self,
        image_b64: str,
        mime_type: str,
        qr_payload: Optional[str] = None,
        pan_number: Optional[str] = None,
    ) -> Optional[DocumentVerificationResult]:
        """Classify and authenticity-check one document image.

        Returns:
            The parsed result, or None when the model reply was unusable.

        Raises:
            VerificationUnavailable: The model call itself failed.
        """
        messages = [
            {"role": "system", "content": DOCUMENT_SYSTEM_PROMPT},
            image_message("user", build_document_prompt(qr_payload, pan_number), [(image_b64, mime_type)]),
        ]
        reply = await self._ask(messages, "Document")
        result = parse_document_reply(reply)
        if result is None:
            log_event("verification", "Document reply could not be parsed")
            return None

        if not qr_payload:
            result.qr_consistent = None
        if pan_number:
            pan_check = validate_pan(pan_number)
            if not pan_check.valid:
                result.risk_flags.append("Stated PAN number has an invalid format")
        log_event(
            "verification",
            f"Document {result.document_type}: {result.overall_verdict} ({result.confidence_score}%)",
        )
        return result

    async def verify_face(
        self,
        live_b64: str,
        live_mime: str = "image/jpeg",
        reference_b64: Optional[str] = None,
        reference_mime: str = "image/jpeg",
    ) -> Optional[FaceVerificationResult]:
        """Liveness check on a selfie, plus a face match when a document photo is given.

        Raises:
            VerificationUnavailable: The model call itself failed.
        """
        if reference_b64:
            user = image_message(
                "user", FACE_MATCH_INSTRUCTION,
                [(live_b64, live_mime), (reference_b64, reference_mime)],
            )
        else:
            user = image_message("user", FACE_LIVENESS_INSTRUCTION, [(live_b64, live_mime)])
        messages = [{"role": "system", "content": FACE_SYSTEM_PROMPT}, user]

        reply = await self._ask(messages, "Face")
        result = parse_face_reply(reply, has_reference=bool(reference_b64))
        if result is None:
            log_event("verification", "Face reply could not be parsed")
        else:
            log_event("verification", f"Face liveness={result.liveness} match={result.match}")
        return result
