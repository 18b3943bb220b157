import os
import random
import tempfile

# Settings are cached on first import; pin a deterministic environment first.
os.environ.update({
    "COMPLETION_PROVIDER": "gateway",
    "AI_GATEWAY_API_KEY": "test-gateway-key",
    "AI_GATEWAY_URL": "https://gateway.test/v1/chat/completions",
    "ABSTRACT_EMAIL_API_KEY": "test-email-key",
    "ABSTRACT_PHONE_API_KEY": "test-phone-key",
    "EMAIL_API_KEY": "test-mail-key",
    "EMAIL_API_URL": "https://mail.test/emails",
    "RATE_LIMIT_REQUESTS": "1000",
    "LOG_DIR": tempfile.mkdtemp(prefix="onboardx-logs-"),
})

import pytest

from onboardx.schemas.schemas import EmailValidationResult, FaceVerificationResult
from onboardx.services.ai_gateway import CompletionClient
from onboardx.services.onboarding_service import OnboardingSession

GATEWAY_URL = "https://gateway.test/v1/chat/completions"
MAIL_URL = "https://mail.test/emails"


class FakeCompletionClient(CompletionClient):
    """Scripted completion capability; replies are streamed in small chunks."""

    def __init__(self, replies=None, error=None):
        self.replies = list(replies or [])
        self.error = error
        self.calls = []

    def _next(self):
        return self.replies.pop(0) if self.replies else "Okay! 👍"

    async def complete(self, messages, model=None):
        self.calls.append({"messages": messages, "model": model})
        if self.error:
            raise self.error
        return self._next()

    async def stream(self, messages, model=None):
        self.calls.append({"messages": messages, "model": model})
        if self.error:
            raise self.error
        reply = self._next()
        for i in range(0, len(reply), 7):
            yield reply[i:i + 7]


class FakeVerifier:
    def __init__(self, document=None, face=None, error=None):
        self.document = document
        self.face = face if face is not None else FaceVerificationResult(
            liveness=True, match=True, reason="Looks good."
        )
        self.error = error
        self.document_calls = []
        self.face_calls = []

    async def verify_document(self, image_b64, mime_type, qr_payload=None, pan_number=None):
        self.document_calls.append({
            "image_b64": image_b64, "mime_type": mime_type,
            "qr_payload": qr_payload, "pan_number": pan_number,
        })
        if self.error:
            raise self.error
        return self.document

    async def verify_face(self, live_b64, live_mime="image/jpeg", reference_b64=None, reference_mime="image/jpeg"):
        self.face_calls.append({"live_b64": live_b64, "reference_b64": reference_b64})
        if self.error:
            raise self.error
        return self.face


class FakeDeliverability:
    def __init__(self, valid=True, reason="Email is valid"):
        self.valid = valid
        self.reason = reason
        self.calls = []

    async def validate_email(self, email):
        self.calls.append(email)
        return EmailValidationResult(valid=self.valid, reason=self.reason)


class FakeNotifier:
    def __init__(self, success=True):
        self.success = success
        self.calls = []

    async def send_account_email(self, to, details):
        self.calls.append((to, details))
        return {"success": self.success}


@pytest.fixture
def make_session():
    """Build an OnboardingSession wired to fakes."""

    def _make(replies=None, client=None, verifier=None, deliverability=None, notifier=None):
        return OnboardingSession(
            "test-session",
            client or FakeCompletionClient(replies),
            verifier=verifier or FakeVerifier(),
            deliverability=deliverability or FakeDeliverability(),
            notifier=notifier or FakeNotifier(),
            rng=random.Random(7),
        )

    return _make
