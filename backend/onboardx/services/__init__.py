from onboardx.services.risk_engine import RiskEngine
from onboardx.services.verification_service import VerificationService
from onboardx.services.deliverability_service import DeliverabilityService
from onboardx.services.notification_service import NotificationService
from onboardx.services.onboarding_service import OnboardingSession

__all__ = [
    "RiskEngine", "VerificationService", "DeliverabilityService",
    "NotificationService", "OnboardingSession",
]
