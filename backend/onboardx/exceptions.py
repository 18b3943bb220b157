"""
Exception taxonomy for the onboarding service.

Validation and parse failures are NOT exceptions here: they degrade to
re-prompt text or ``None`` results. Only conditions that end a request
are raised.
"""


class OnboardXError(Exception):
    """Base class for all service errors."""


class ConfigurationError(OnboardXError):
    """A required secret or setting is missing."""


class UpstreamError(OnboardXError):
    """Non-success response or transport failure from an external capability."""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        self.message = message or f"Upstream returned HTTP {status_code}"
        super().__init__(self.message)

    @property
    def public_message(self) -> str:
        if self.status_code == 429:
            return "Rate limit exceeded. Please try again later."
        if self.status_code == 402:
            return "Usage limit reached. Please add credits."
        return "AI gateway error"

    @property
    def public_status(self) -> int:
        return self.status_code if self.status_code in (402, 429) else 500


class VerificationUnavailable(UpstreamError):
    """The document/face verification call itself failed (not a parse failure)."""

    @property
    def public_message(self) -> str:
        if self.status_code in (402, 429):
            return super().public_message
        return "Verification service unavailable"


class SessionNotFound(OnboardXError):
    pass


class SessionBusy(OnboardXError):
    """Another action is already in flight for this session."""


class SessionClosed(OnboardXError):
    pass
