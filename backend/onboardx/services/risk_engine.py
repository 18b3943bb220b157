"""
Risk Engine — Default-probability scoring for new account holders.

A logistic function over hand-set coefficients: income band, employment
type and verification completeness. Pure and deterministic.
"""
import math
from typing import Dict

from onboardx.schemas.schemas import RiskInputs, RiskResult
from onboardx.utils.formatting import format_inr, to_fixed

INTERCEPT = -1.5

# (exclusive lower bound in INR, coefficient), checked top-down
INCOME_BANDS = (
    (80000, -1.2),
    (40000, -0.5),
    (20000, 0.2),
    (10000, 0.8),
)
INCOME_FLOOR_COEFFICIENT = 1.5

EMPLOYMENT_COEFFICIENTS: Dict[str, float] = {
    "salaried": -0.8,
    "business": 0.1,
    "freelancer": 0.6,
    "student": 1.2,
}
UNKNOWN_EMPLOYMENT_COEFFICIENT = 0.3

FIXED_DTI: Dict[str, float] = {
    "student": 55,
    "freelancer": 42,
    "business": 35,
}

LOW_RISK_CEILING = 0.35
MEDIUM_RISK_CEILING = 0.65

STUDENT_RISK_NARRATIVE = (
    "🎓 **Risk Assessment — Student Profile**\n\n"
    "Limited credit history detected. Recommending secured student products: "
    "a Student Savings Account with a Secured Student Card."
)


def sigmoid(x: float) -> float:
    return 1 / (1 + math.exp(-x))


class RiskEngine:
    """Logistic default-risk scoring engine for account onboarding."""

    @staticmethod
    def income_coefficient(monthly_income: float) -> float:
        for threshold, coefficient in INCOME_BANDS:
            if monthly_income > threshold:
                return coefficient
        return INCOME_FLOOR_COEFFICIENT

    @staticmethod
    def income_label(monthly_income: float) -> str:
        if monthly_income > 80000:
            return "high income"
        if monthly_income > 40000:
            return "moderate income"
        if monthly_income > 20000:
            return "lower-moderate income"
        return "low income"

    @staticmethod
    def level_for(probability: float) -> str:
        """Map a probability onto Low / Medium / High at 0.35 and 0.65."""
        if probability < LOW_RISK_CEILING:
            return "Low"
        if probability < MEDIUM_RISK_CEILING:
            return "Medium"
        return "High"

    @staticmethod
    def estimate_dti(employment_type: str, monthly_income: float) -> float:
        """Estimated debt-to-income percentage, never below 10."""
        fixed = FIXED_DTI.get(employment_type)
        if fixed is not None:
            return fixed
        return max(10, 40 - monthly_income / 5000)

    @staticmethod
    def score(inputs: RiskInputs) -> RiskResult:
        """Score an applicant.

        Args:
            inputs: Income, employment type and verification flags.

        Returns:
            A fresh RiskResult. Never raises for valid inputs.
        """
        employment = inputs.employment_type.strip().lower()
        income = inputs.monthly_income

        verification_term = (-0.4 if inputs.documents_verified else 0.3) + (
            -0.3 if inputs.face_verified else 0.2
        )
        z = (
            INTERCEPT
            + RiskEngine.income_coefficient(income)
            + EMPLOYMENT_COEFFICIENTS.get(employment, UNKNOWN_EMPLOYMENT_COEFFICIENT)
            + verification_term
        )
        probability = sigmoid(z)
        dti = RiskEngine.estimate_dti(employment, income)

        explanation = (
            f"Customer has {to_fixed(probability * 100)}% probability of default due to "
            f"{RiskEngine.income_label(income)} ({format_inr(income)}/mo), "
            f"{inputs.employment_type or 'unspecified'} employment, "
            f"and estimated DTI of {to_fixed(dti)}%."
        )
        if inputs.documents_verified and inputs.face_verified:
            explanation += " Identity fully verified."
        else:
            explanation += " Incomplete verification increases risk."

        return RiskResult(
            probability=probability,
            level=RiskEngine.level_for(probability),
            dti=dti,
            explanation=explanation,
        )

    @staticmethod
    def describe(result: RiskResult) -> str:
        """Chat-ready rendering of a risk result."""
        badge = {"Low": "🟢", "Medium": "🟡"}.get(result.level, "🔴")
        return (
            f"{badge} **Risk Assessment — {result.level} Risk**\n\n"
            f"{result.explanation}\n\n"
            f"Default probability: {to_fixed(result.probability * 100)}% | "
            f"Estimated DTI: {to_fixed(result.dti)}%"
        )
