import pytest

from onboardx.exceptions import UpstreamError, VerificationUnavailable
from onboardx.schemas.schemas import DocumentVerificationResult
from onboardx.services.verification_service import (
    DEFAULT_FACE_REASON, VerificationService, build_document_prompt, extract_json_object,
    parse_document_reply, parse_face_reply,
)
from tests.conftest import FakeCompletionClient

GENUINE_PAN_REPLY = """Here is my analysis:
```json
{"documentType": "PAN", "isAuthentic": true, "confidenceScore": 91,
 "tamperedAreas": [], "formatValid": true,
 "securityFeatures": {"detected": ["hologram"], "missing": []},
 "extractedData": {"name": "Rahul Kumar", "idNumber": "ABCPK1234F", "dob": "15/06/1990", "gender": null},
 "qrConsistent": true, "riskFlags": [], "overallVerdict": "GENUINE", "reason": "Layout and fonts match."}
```"""


# ─── JSON extraction ────────────────────────────────────────────────

def test_extracts_object_wrapped_in_prose_and_fences():
    text = 'Sure! ```json\n{"liveness": false, "match": null, "reason": "blurred"}\n``` done'
    assert extract_json_object(text) == {"liveness": False, "match": None, "reason": "blurred"}


def test_takes_first_balanced_block_and_ignores_braces_in_strings():
    text = 'x {"a": {"b": "}"}, "c": 1} y {"z": 2}'
    assert extract_json_object(text) == {"a": {"b": "}"}, "c": 1}


@pytest.mark.parametrize("text", [None, "", "no json here", '{"a": 1', "{not json}"])
def test_unusable_text_yields_none(text):
    assert extract_json_object(text) is None


# ─── Face replies ───────────────────────────────────────────────────

def test_explicit_liveness_false_does_not_pass():
    result = parse_face_reply('{"liveness": false, "match": null, "reason": "blurred"}', has_reference=True)
    assert result.liveness is False
    assert result.passed is False
    assert result.reason == "blurred"


def test_omitted_match_defaults_to_true():
    result = parse_face_reply('{"liveness": true}', has_reference=True)
    assert result.match is True
    assert result.passed is True
    assert result.reason == DEFAULT_FACE_REASON


def test_non_boolean_liveness_counts_as_live():
    result = parse_face_reply('{"liveness": "no", "reason": "screen glare"}', has_reference=False)
    assert result.liveness is True
    assert result.passed is True


def test_explicit_mismatch_blocks():
    result = parse_face_reply('{"liveness": true, "match": false, "reason": "different person"}', True)
    assert result.passed is False


def test_match_is_none_without_reference():
    result = parse_face_reply('{"liveness": true, "match": true}', has_reference=False)
    assert result.match is None


def test_unparseable_face_reply_is_none():
    assert parse_face_reply("I cannot help with that.", has_reference=False) is None


# ─── Document replies ───────────────────────────────────────────────

def test_document_reply_is_parsed_into_result():
    result = parse_document_reply(GENUINE_PAN_REPLY)
    assert result.overall_verdict == "GENUINE"
    assert result.extracted_data.id_number == "ABCPK1234F"
    assert result.security_features.detected == ["hologram"]


def test_document_fields_are_normalised():
    result = DocumentVerificationResult.model_validate({
        "confidenceScore": "87.6", "overallVerdict": "likely fake", "riskFlags": None,
    })
    assert result.confidence_score == 88
    assert result.overall_verdict == "LIKELY_FAKE"
    assert result.risk_flags == []

    assert DocumentVerificationResult.model_validate({"confidenceScore": 150}).confidence_score == 100
    assert DocumentVerificationResult.model_validate({"overallVerdict": "maybe"}).overall_verdict == "SUSPICIOUS"


def test_document_prompt_covers_every_check():
    prompt = build_document_prompt(qr_payload="<QPDB n='Rahul Kumar'/>", pan_number="abcpk1234f")
    assert "CLASSIFY" in prompt
    assert "TAMPERING" in prompt
    assert "SECURITY" in prompt
    assert "<QPDB n='Rahul Kumar'/>" in prompt
    assert "ABCPK1234F" in prompt
    assert '"overallVerdict"' in prompt

    assert "set qrConsistent to null" in build_document_prompt()


# ─── Service ────────────────────────────────────────────────────────

async def test_verify_document_sends_image_to_vision_model():
    client = FakeCompletionClient([GENUINE_PAN_REPLY])
    service = VerificationService(client, model="vision-model")

    result = await service.verify_document("aGVsbG8=", "image/png", qr_payload="QR", pan_number="ABCPK1234F")

    assert result.is_authentic is True
    call = client.calls[0]
    assert call["model"] == "vision-model"
    image_part = call["messages"][1]["content"][0]
    assert image_part["image_url"]["url"] == "data:image/png;base64,aGVsbG8="


async def test_qr_consistency_is_cleared_without_a_qr_payload():
    service = VerificationService(FakeCompletionClient([GENUINE_PAN_REPLY]))
    result = await service.verify_document("aGVsbG8=", "image/jpeg")
    assert result.qr_consistent is None


async def test_invalid_stated_pan_adds_a_risk_flag():
    service = VerificationService(FakeCompletionClient([GENUINE_PAN_REPLY]))
    result = await service.verify_document("aGVsbG8=", "image/jpeg", pan_number="ABCD1234F")
    assert "Stated PAN number has an invalid format" in result.risk_flags


async def test_unusable_document_reply_degrades_to_none():
    service = VerificationService(FakeCompletionClient(["Sorry, I can't see a document."]))
    assert await service.verify_document("aGVsbG8=", "image/jpeg") is None


@pytest.mark.parametrize("status", [500, 429, 502])
async def test_upstream_failure_is_a_typed_adapter_error(status):
    service = VerificationService(FakeCompletionClient(error=UpstreamError(status)))
    with pytest.raises(VerificationUnavailable) as exc_info:
        await service.verify_face("aGVsbG8=")
    assert exc_info.value.status_code == status


async def test_verify_face_sends_selfie_then_document():
    client = FakeCompletionClient(['{"liveness": true, "match": true, "reason": "Same person."}'])
    service = VerificationService(client)

    result = await service.verify_face("c2VsZmll", "image/jpeg", "ZG9j", "image/png")

    assert result.passed is True
    content = client.calls[0]["messages"][1]["content"]
    assert content[0]["image_url"]["url"].endswith("c2VsZmll")
    assert content[1]["image_url"]["url"] == "data:image/png;base64,ZG9j"
    assert "first image is a live selfie" in content[2]["text"]


@pytest.mark.parametrize("raw", ["Infinity", "-Infinity", "NaN", "1e400"])
def test_non_finite_confidence_degrades_to_zero(raw):
    result = parse_document_reply(f'{{"confidenceScore": {raw}, "overallVerdict": "GENUINE"}}')
    assert result is not None
    assert result.confidence_score == 0
    assert result.overall_verdict == "GENUINE"


async def test_non_finite_confidence_does_not_break_document_check():
    service = VerificationService(FakeCompletionClient(['{"confidenceScore": Infinity}']))
    result = await service.verify_document("aGVsbG8=", "image/jpeg")
    assert result.confidence_score == 0
