"""
Onboarding Script — What the assistant is told, and how its replies steer the flow.

The model ends a reply that opens a new step with a machine-readable
marker such as ``[[STEP:INCOME]]``. Markers are stripped before the text
reaches the user. The phrase tables are only consulted when a reply
carries no marker.
"""
import re
from enum import Enum
from typing import Optional, Tuple


class Phase(str, Enum):
    EMPLOYMENT = "EMPLOYMENT"
    DOCUMENTS = "DOCUMENTS"
    INCOME = "INCOME"
    FACE = "FACE"
    RISK = "RISK"
    EMAIL = "EMAIL"
    COMPLETE = "COMPLETE"


PHASE_MARKER_PATTERN = re.compile(r"\[\[\s*STEP\s*:\s*([A-Za-z_]+)\s*\]\]")

FACE_TRIGGER_PHRASES = (
    "face verification",
    "camera will open",
    "open the camera",
    "liveness check",
    "selfie",
    "face scan",
)

INCOME_TRIGGER_PHRASES = (
    "monthly income",
    "financial profile",
    "income in inr",
    "your income",
)

EMAIL_TRIGGER_PHRASES = (
    "email address",
    "send account details",
    "your email",
)

ONBOARDING_SYSTEM_PROMPT = """You are OnboardX, a friendly AI banking onboarding assistant for Indian users. Help users open a bank account quickly. Guide them in this exact order:

STEP 1 — Ask if they are a freelancer, salaried employee, business owner, or student.
STEP 2 — Ask them to upload their PAN card using the + button.
STEP 3 — Ask them to upload their Aadhaar card. The names on both documents must match; if you are told they do not, ask for a re-upload and do not continue.
STEP 4 — INCOME:
  • If the user is a STUDENT: DO NOT ask for monthly income. Skip directly to face verification. Students get a Student Savings Account and a Secured Student Card. Never suggest high-value loans for students.
  • For all others: Ask for their monthly income in INR to assess their financial profile.
STEP 5 — Say face verification is next and that the camera will open.
STEP 6 — After face verification succeeds, the system runs risk scoring and creates the account. Do not invent account numbers.

Control markers: when your reply starts one of the steps below, end it with exactly one marker on its own line:
[[STEP:EMPLOYMENT]] asking for employment type
[[STEP:DOCUMENTS]] asking for a PAN or Aadhaar upload
[[STEP:INCOME]] asking for monthly income
[[STEP:FACE]] announcing face verification / opening the camera
[[STEP:COMPLETE]] when every step is done and the account can be created
Never mention the markers to the user.

Document handling: you will receive a verification summary for each uploaded document. Use it; do not contradict it.

Keep replies SHORT (1-3 sentences), warm, professional, use emojis occasionally 🎉. Stay strictly on banking onboarding. Never break character."""

GREETING_PROMPT = (
    "Hi! Start the onboarding. Greet the user warmly and ask if they are a freelancer, "
    "salaried employee, business owner, or student — in one sentence."
)


def _phase_from_phrases(text: str) -> Optional[Phase]:
    lower = text.lower()
    if any(p in lower for p in FACE_TRIGGER_PHRASES):
        return Phase.FACE
    if any(p in lower for p in INCOME_TRIGGER_PHRASES):
        return Phase.INCOME
    if any(p in lower for p in EMAIL_TRIGGER_PHRASES):
        return Phase.EMAIL
    return None


def extract_phase(reply: str) -> Tuple[str, Optional[Phase]]:
    """Split a model reply into (visible text, phase).

    The last recognised marker wins. Unknown marker names are removed from
    the text but ignored.
    """
    phase: Optional[Phase] = None
    for name in PHASE_MARKER_PATTERN.findall(reply or ""):
        try:
            phase = Phase(name.upper())
        except ValueError:
            continue
    visible = PHASE_MARKER_PATTERN.sub("", reply or "").strip()
    if phase is None:
        phase = _phase_from_phrases(visible)
    return visible, phase
