"""
Analysis — Configuration risk scoring.

Classes:
- RiskScorer: Pure snapshot → RiskAssessment
"""

from echonate.core.analysis.risk import (
    RiskScorer,
    DEFAULT_RISK_WEIGHTS,
    DEFAULT_RISK_THRESHOLDS,
    load_risk_weights,
)

__all__ = ['RiskScorer', 'DEFAULT_RISK_WEIGHTS', 'DEFAULT_RISK_THRESHOLDS', 'load_risk_weights']
