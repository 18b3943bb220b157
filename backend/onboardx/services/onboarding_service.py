"""
Onboarding Service — Per-chat state machine driving account opening.

Steps: chat -> awaitingIncome -> awaitingFace -> awaitingEmail -> done.
Document uploads are accepted in any step. Every public action returns
the messages it produced plus a snapshot of the state.

One ``OnboardingSession`` exists per open chat. Actions on a session are
serialised: a second action while one is in flight is rejected, and
results that arrive after the chat was closed are discarded.
"""
import asyncio
import base64
import random
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from onboardx.config import Settings, get_settings
from onboardx.exceptions import SessionBusy, SessionClosed, UpstreamError, VerificationUnavailable
from onboardx.schemas.schemas import (
    AccountDetails, BotMessage, DocumentVerificationResult, FaceVerificationResult,
    OnboardingState, RiskInputs, Step, TurnResponse,
)
from onboardx.services.ai_gateway import CompletionClient
from onboardx.services.deliverability_service import DeliverabilityService
from onboardx.services.notification_service import NotificationService
from onboardx.services.onboarding_script import (
    GREETING_PROMPT, ONBOARDING_SYSTEM_PROMPT, Phase, extract_phase,
)
from onboardx.services.risk_engine import STUDENT_RISK_NARRATIVE, RiskEngine
from onboardx.services.verification_service import DEFAULT_FACE_REASON, VerificationService
from onboardx.utils.formatting import format_inr, to_fixed
from onboardx.utils.logger import log_event
from onboardx.utils.qr import decode_qr
from onboardx.utils.validators import (
    detect_employment, is_skip, is_valid_email_format, normalize_name, parse_income, validate_pan,
)

IFSC_POOL = ("ONBX0001234", "ONBX0005678", "ONBX0009012")
ACCOUNT_NUMBER_LEADING_DIGIT = "3"
ACCOUNT_NUMBER_LENGTH = 12

ACCOUNT_TYPES = {
    "student": "Student Savings Account",
    "freelancer": "Freelancer Current Account",
    "business": "Business Current Account",
}
DEFAULT_ACCOUNT_TYPE = "Savings Account"

INCOME_REPROMPT = "Please enter a valid monthly income amount in INR (e.g. 45000)."
EMAIL_PROMPT = (
    "📧 Share your email address and I'll send these details to you, "
    "or type **skip** to finish."
)


def generate_account_details(rng: random.Random) -> Tuple[str, str]:
    """Synthesize a 12-digit account number and pick an IFSC from the pool."""
    digits = "".join(str(rng.randint(0, 9)) for _ in range(ACCOUNT_NUMBER_LENGTH - 1))
    return ACCOUNT_NUMBER_LEADING_DIGIT + digits, rng.choice(IFSC_POOL)


def account_type_for(employment_type: str) -> str:
    return ACCOUNT_TYPES.get(employment_type, DEFAULT_ACCOUNT_TYPE)


def describe_document(result: DocumentVerificationResult) -> str:
    icon = {"GENUINE": "✅", "SUSPICIOUS": "⚠️"}.get(result.overall_verdict, "❌")
    text = (
        f"{icon} **Document check — {result.document_type}**: {result.overall_verdict} "
        f"({result.confidence_score}% confidence)."
    )
    if result.reason:
        text += f" {result.reason}"
    if result.risk_flags:
        text += "\nFlags: " + "; ".join(result.risk_flags)
    return text


class Turn:
    """Output collected while one action runs."""

    def __init__(self):
        self.messages: List[BotMessage] = []
        self.open_face_capture = False


class OnboardingSession:
    """Conversation controller owning one OnboardingState."""

    def __init__(
        self,
        session_id: str,
        client: CompletionClient,
        verifier: Optional[VerificationService] = None,
        deliverability: Optional[DeliverabilityService] = None,
        notifier: Any = NotificationService,
        rng: Optional[random.Random] = None,
        settings: Optional[Settings] = None,
    ):
        self.id = session_id
        self.client = client
        self.verifier = verifier or VerificationService(client)
        self.deliverability = deliverability or DeliverabilityService()
        self.notifier = notifier
        self.rng = rng or random.SystemRandom()
        self.settings = settings or get_settings()

        self.state = OnboardingState()
        self.history: List[Dict[str, Any]] = []
        self.transcript: List[BotMessage] = []
        self.reference_image: Optional[Tuple[str, str]] = None
        self.document_names: List[str] = []
        self.account_finalized = False
        self.active = True
        self.created_at = datetime.utcnow()
        self.last_activity = self.created_at
        self._lock = asyncio.Lock()

    # ─── Action plumbing ────────────────────────────────────────────

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def _action(self):
        if not self.active:
            raise SessionClosed(self.id)
        if self._lock.locked():
            raise SessionBusy(self.id)
        async with self._lock:
            self.last_activity = datetime.utcnow()
            yield Turn()

    def _ensure_active(self) -> None:
        """Called after every await: a closed chat must not be mutated."""
        if not self.active:
            log_event("onboarding", f"Discarding late result for closed session {self.id}")
            raise SessionClosed(self.id)

    def _respond(self, turn: Turn) -> TurnResponse:
        return TurnResponse(
            messages=turn.messages,
            state=self.state.model_copy(deep=True),
            open_face_capture=turn.open_face_capture,
        )

    def snapshot(self) -> TurnResponse:
        return TurnResponse(messages=list(self.transcript), state=self.state.model_copy(deep=True))

    def _say(self, turn: Turn, content: str, kind: str = "text", remember: bool = True) -> None:
        message = BotMessage(role="bot", content=content, kind=kind)
        turn.messages.append(message)
        self.transcript.append(message)
        if remember:
            self.history.append({"role": "assistant", "content": content})

    def _hear(self, content: str, kind: str = "text") -> None:
        self.transcript.append(BotMessage(role="user", content=content, kind=kind))

    def _advance(self, amount: int) -> None:
        self.state.progress = min(self.state.progress + amount, 95)

    def close(self) -> None:
        self.active = False
        self.reference_image = None
        log_event("onboarding", f"Session {self.id} closed at step {self.state.step.value}")

    # ─── Conversation ───────────────────────────────────────────────

    async def _converse(self, turn: Turn, prompt: str, record_prompt: bool = True) -> Optional[Phase]:
        """Stream one assistant reply for ``prompt`` and act on its phase marker."""
        messages = [{"role": "system", "content": ONBOARDING_SYSTEM_PROMPT}, *self.history]
        messages.append({"role": "user", "content": prompt})

        reply = ""
        try:
            async for delta in self.client.stream(messages, model=self.settings.CHAT_MODEL):
                reply += delta
        except UpstreamError as exc:
            self._ensure_active()
            self._say(turn, exc.public_message, kind="warning", remember=False)
            return None
        self._ensure_active()

        if record_prompt:
            self.history.append({"role": "user", "content": prompt})
        visible, phase = extract_phase(reply)
        if not visible:
            visible = "Sorry, something went wrong. Please try again."
        self.history.append({"role": "assistant", "content": visible})
        turn.messages.append(BotMessage(role="bot", content=visible))
        self.transcript.append(turn.messages[-1])
        self._advance(12)

        await self._apply_phase(turn, phase)
        return phase

    async def _apply_phase(self, turn: Turn, phase: Optional[Phase]) -> None:
        state = self.state
        if phase is Phase.INCOME:
            if state.employment_type != "student" and state.monthly_income is None:
                state.step = Step.AWAITING_INCOME
        elif phase is Phase.FACE:
            if not state.face_verified:
                state.step = Step.AWAITING_FACE
                turn.open_face_capture = True
        elif phase in (Phase.RISK, Phase.EMAIL, Phase.COMPLETE):
            if self.ready_to_finalize:
                self._finalize(turn)

    # ─── Public actions ─────────────────────────────────────────────

    async def start(self) -> TurnResponse:
        async with self._action() as turn:
            await self._converse(turn, GREETING_PROMPT, record_prompt=False)
            return self._respond(turn)

    async def send_text(self, text: str) -> TurnResponse:
        async with self._action() as turn:
            text = text.strip()
            self._hear(text)
            state = self.state

            if state.step is Step.DONE:
                self._say(turn, "✅ Your onboarding is complete. Your account details are shown above.",
                          remember=False)
            elif state.step is Step.AWAITING_FACE:
                self._say(turn, "📷 Please complete face verification to continue.",
                          kind="warning", remember=False)
                turn.open_face_capture = True
            elif state.step is Step.AWAITING_INCOME:
                await self._handle_income(turn, text)
            elif state.step is Step.AWAITING_EMAIL:
                await self._handle_email(turn, text)
            else:
                employment = detect_employment(text)
                if employment and not state.employment_type:
                    state.employment_type = employment
                    log_event("onboarding", f"Session {self.id} employment={employment}")
                await self._converse(turn, text)
            return self._respond(turn)

    async def upload_document(
        self,
        data: bytes,
        mime_type: str,
        filename: str = "document",
        qr_payload: Optional[str] = None,
        pan_number: Optional[str] = None,
    ) -> TurnResponse:
        """Verify an uploaded ID and let the assistant continue from the verdict."""
        async with self._action() as turn:
            self._hear(f"📎 {filename}", kind="file")
            state = self.state
            if state.step is Step.DONE:
                self._say(turn, "✅ Your onboarding is already complete.", remember=False)
                return self._respond(turn)

            state.documents_verified = True
            image_b64 = base64.b64encode(data).decode("ascii")
            if not qr_payload:
                # OpenCV decoding is CPU-bound
                qr_payload = await asyncio.to_thread(decode_qr, data)
                self._ensure_active()

            if pan_number:
                pan_check = validate_pan(pan_number)
                if not pan_check.valid:
                    self._say(turn, f"⚠️ {pan_check.reason}", kind="warning")

            unavailable = False
            try:
                result = await self.verifier.verify_document(image_b64, mime_type, qr_payload, pan_number)
            except VerificationUnavailable:
                self._ensure_active()
                result = None
                unavailable = True
                summary = "The automatic document check is unavailable right now."
                self._say(turn, "⚠️ I couldn't run the automatic document check right now. "
                                "We'll continue and review it manually.", kind="warning")
            else:
                self._ensure_active()
                summary = describe_document(result) if result else (
                    "The document could not be automatically analysed."
                )

            if result is not None:
                if result.overall_verdict == "LIKELY_FAKE":
                    state.documents_verified = False
                    self._say(turn, f"❌ This document appears altered or fake. {result.reason} "
                                    "Please upload an original, unedited document.", kind="warning")
                    return self._respond(turn)

                name = normalize_name(result.extracted_data.name)
                if name and self.document_names and name != self.document_names[0]:
                    state.documents_verified = False
                    self._say(turn, "❌ The name on this document doesn't match your previous document. "
                                    "Please re-upload documents that belong to you.", kind="warning")
                    return self._respond(turn)
                if name and not self.document_names:
                    self.document_names.append(name)
                self._say(turn, summary, kind="document")
            elif not unavailable:
                self._say(turn, f"ℹ️ {summary} Continuing with manual review.", kind="warning")

            self.reference_image = (image_b64, mime_type)
            self._advance(10)
            await self._converse(
                turn,
                f"I have uploaded a document: {filename}. Verification summary: {summary} "
                "Continue the onboarding with the next step.",
            )
            return self._respond(turn)

    async def submit_face_capture(self, data: bytes, mime_type: str = "image/jpeg") -> TurnResponse:
        """Check a live capture; on success continue to risk scoring and account creation."""
        async with self._action() as turn:
            state = self.state
            if state.step is Step.DONE or state.face_verified:
                self._say(turn, "✅ Your face is already verified.", remember=False)
                return self._respond(turn)

            live_b64 = base64.b64encode(data).decode("ascii")
            reference_b64, reference_mime = self.reference_image or (None, "image/jpeg")
            try:
                result = await self.verifier.verify_face(live_b64, mime_type, reference_b64, reference_mime)
            except VerificationUnavailable:
                self._ensure_active()
                state.step = Step.AWAITING_FACE
                turn.open_face_capture = True
                self._say(turn, "⚠️ Verification failed due to a network error. Please try again.",
                          kind="warning", remember=False)
                return self._respond(turn)
            self._ensure_active()

            if result is None:
                log_event("onboarding", f"Session {self.id}: unparseable face reply, accepting")
                result = FaceVerificationResult(liveness=True, match=None, reason=DEFAULT_FACE_REASON)

            if not result.passed:
                state.step = Step.AWAITING_FACE
                turn.open_face_capture = True
                if not result.liveness:
                    text = f"⚠️ Liveness check failed: {result.reason} Please retake your selfie in good lighting."
                else:
                    text = (f"⚠️ Face mismatch: {result.reason} The selfie doesn't match the ID document. "
                            "Please ensure you're using your own document.")
                self._say(turn, text, kind="warning")
                return self._respond(turn)

            state.face_verified = True
            state.step = Step.CHAT
            self._say(turn, f"✅ Face verification successful! {result.reason}")
            self._advance(15)

            if state.employment_type == "student":
                self._say(turn, STUDENT_RISK_NARRATIVE, kind="risk")
                self._finalize(turn)
            elif state.monthly_income is not None:
                self._score(turn)
                self._finalize(turn)
            else:
                state.step = Step.AWAITING_INCOME
                self._say(turn, "💰 To complete your risk assessment, please share your monthly income in INR.")
            return self._respond(turn)

    async def finalize(self) -> TurnResponse:
        async with self._action() as turn:
            if not self.account_finalized and not self.ready_to_finalize:
                self._say(turn, "Please complete face verification and the income check first.",
                          kind="warning", remember=False)
            else:
                self._finalize(turn)
            return self._respond(turn)

    # ─── Step handlers ──────────────────────────────────────────────

    async def _handle_income(self, turn: Turn, text: str) -> None:
        state = self.state
        income = parse_income(text)
        if income is None or income < self.settings.MIN_MONTHLY_INCOME:
            self._say(turn, INCOME_REPROMPT, kind="warning", remember=False)
            return

        self.history.append({"role": "user", "content": text})
        state.monthly_income = income
        state.step = Step.CHAT
        result = self._score(turn)

        if state.face_verified:
            self._finalize(turn)
            return
        await self._converse(
            turn,
            f"User's monthly income is {format_inr(income)}. Risk level is {result.level}. "
            "Continue to face verification.",
        )

    async def _handle_email(self, turn: Turn, text: str) -> None:
        state = self.state
        if is_skip(text):
            state.step = Step.DONE
            state.progress = 100
            self._say(turn, "👍 No problem! Your account details are shown above. Welcome aboard! 🚀")
            return
        if not is_valid_email_format(text):
            self._say(turn, "That doesn't look like a valid email (e.g. john@gmail.com). "
                            "Please try again, or type skip.", kind="warning", remember=False)
            return

        verdict = await self.deliverability.validate_email(text)
        self._ensure_active()
        if not verdict.valid:
            self._say(turn, f"❌ This email address appears invalid or undeliverable ({verdict.reason}). "
                            "Please provide a valid email, or type skip.", kind="warning", remember=False)
            return

        state.email = text
        outcome = await self.notifier.send_account_email(text, self.account_details())
        self._ensure_active()
        state.step = Step.DONE
        state.progress = 100
        if outcome.get("success"):
            self._say(turn, f"✅ Account details sent to **{text}**. Welcome aboard! 🚀")
        else:
            self._say(turn, "⚠️ We couldn't send the email right now, but your account is active. "
                            "Please keep the details above. Welcome aboard! 🚀", kind="warning")

    # ─── Risk & account ─────────────────────────────────────────────

    @property
    def ready_to_finalize(self) -> bool:
        state = self.state
        if not state.face_verified:
            return False
        return state.employment_type == "student" or state.risk_result is not None

    def _score(self, turn: Turn):
        state = self.state
        result = RiskEngine.score(RiskInputs(
            monthly_income=state.monthly_income or 0,
            employment_type=state.employment_type,
            documents_verified=state.documents_verified,
            face_verified=state.face_verified,
        ))
        state.risk_result = result
        self._say(turn, RiskEngine.describe(result), kind="risk")
        self._advance(15)
        log_event("onboarding", f"Session {self.id} risk={result.level} p={result.probability:.4f}")
        return result

    def account_details(self) -> AccountDetails:
        state = self.state
        risk = state.risk_result
        return AccountDetails(
            account_number=state.account_number,
            ifsc=state.ifsc,
            account_type=state.account_type,
            branch=self.settings.BRANCH_NAME,
            employment_type=state.employment_type,
            monthly_income=state.monthly_income,
            risk_level=risk.level if risk else None,
            risk_probability=risk.probability if risk else None,
        )

    def _finalize(self, turn: Turn) -> None:
        """Create the account exactly once per session."""
        if self.account_finalized:
            return
        self.account_finalized = True
        state = self.state
        state.account_number, state.ifsc = generate_account_details(self.rng)
        state.account_type = account_type_for(state.employment_type)

        risk = state.risk_result
        risk_badge = (
            f"\n🔍 **Risk Level:** {risk.level} ({to_fixed(risk.probability * 100)}% default probability)"
            if risk else ""
        )
        income = format_inr(state.monthly_income) if state.monthly_income else "Not provided"
        self._say(
            turn,
            "🎉 **Your OnboardX Bank Account is Created!**\n\n"
            "━━━━━━━━━━━━━━━━━━━━\n"
            f"🏦 **Account Number:** {state.account_number}\n"
            f"🔢 **IFSC Code:** {state.ifsc}\n"
            f"🏛️ **Branch:** {self.settings.BRANCH_NAME}\n"
            f"💼 **Type:** {state.account_type}\n"
            f"💰 **Monthly Income:** {income}"
            f"{risk_badge}\n"
            "━━━━━━━━━━━━━━━━━━━━",
            kind="account_details",
        )
        state.step = Step.AWAITING_EMAIL
        state.progress = 95
        self._say(turn, EMAIL_PROMPT)
        log_event("onboarding", f"Session {self.id} account created ({state.account_type})")
