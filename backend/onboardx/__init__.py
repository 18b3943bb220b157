"""OnboardX — conversational bank account onboarding backend."""
