"""
EchoNate Core Analysis — Risk Scorer
======================================
Deterministic, side-effect-free mapping from a configuration snapshot to an
ordinal risk level.

Each setting value contributes a weight from a table; the sum is bucketed
by two thresholds (LOW ≤ low_max < MEDIUM ≤ medium_max < HIGH). The table
and thresholds are adjustable configuration (risk_weights.json) merged over
the defaults below.

The score is for reporting only. The gate never reads it, and it is always
recomputed from the live snapshot: nothing here caches or persists a score.

Import from: echonate.core.analysis.risk
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

from echonate.core.types import RiskAssessment, RiskLevel

__all__ = [
    'RiskScorer', 'DEFAULT_RISK_WEIGHTS', 'DEFAULT_RISK_THRESHOLDS',
    'load_risk_weights',
]

logger = logging.getLogger("echonate.core.analysis.risk")

# setting → {value → weight}. Boolean values are keyed "true"/"false" so the
# table round-trips through JSON. Values not listed weigh 0.
DEFAULT_RISK_WEIGHTS: Dict[str, Dict[str, int]] = {
    'user_confirmation':    {'false': 3},
    'action_logging':       {'false': 2},
    'rate_limit_strategy':  {'aggressive': 1, 'unrestricted': 2},
    'captcha_mode':         {'assisted': 1, 'automated': 2},
    'form_auto_submit':     {'true': 1},
    'session_verification': {'false': 2},
    'fingerprint_method':   {'randomization': 1, 'spoofing': 2},
    'challenge_strategy':   {'assist': 1, 'bypass': 2},
}

DEFAULT_RISK_THRESHOLDS: Dict[str, int] = {
    'low_max': 2,
    'medium_max': 8,
}


def _value_key(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


class RiskScorer:
    """Pure scorer over a fixed weight table."""

    def __init__(self, weights: Mapping[str, Mapping[str, int]] = None,
                 thresholds: Mapping[str, int] = None):
        source = DEFAULT_RISK_WEIGHTS if weights is None else weights
        # Private copies: later edits to the caller's dicts cannot change scores
        self._weights = {k: dict(v) for k, v in source.items()}
        self._thresholds = dict(DEFAULT_RISK_THRESHOLDS)
        if thresholds:
            self._thresholds.update(thresholds)

    @property
    def weights(self) -> Dict[str, Dict[str, int]]:
        return {k: dict(v) for k, v in self._weights.items()}

    @property
    def thresholds(self) -> Dict[str, int]:
        return dict(self._thresholds)

    def factors(self, snapshot: Mapping[str, Any]) -> Dict[str, int]:
        """Per-setting contribution for every weighted setting."""
        result = {}
        for setting, table in self._weights.items():
            if setting not in snapshot:
                result[setting] = 0
                continue
            result[setting] = int(table.get(_value_key(snapshot[setting]), 0))
        return result

    def level_for(self, score: int) -> RiskLevel:
        if score <= self._thresholds['low_max']:
            return RiskLevel.LOW
        if score <= self._thresholds['medium_max']:
            return RiskLevel.MEDIUM
        return RiskLevel.HIGH

    def assess(self, snapshot: Mapping[str, Any]) -> RiskAssessment:
        factors = self.factors(snapshot)
        score = sum(factors.values())
        return RiskAssessment(score=score, level=self.level_for(score), factors=factors)


def load_risk_weights(path: Path) -> Tuple[Dict[str, Dict[str, int]], Dict[str, int]]:
    """Load a risk table overlay.

    File format::

        {"weights": {"captcha_mode": {"automated": 3}},
         "thresholds": {"low_max": 2, "medium_max": 8}}

    Weights are merged per setting over the defaults. A missing or invalid
    file yields the defaults.
    """
    weights = {k: dict(v) for k, v in DEFAULT_RISK_WEIGHTS.items()}
    thresholds = dict(DEFAULT_RISK_THRESHOLDS)

    path = Path(path)
    if not path.exists():
        return weights, thresholds

    try:
        data = json.loads(path.read_text(encoding='utf-8'))
        for setting, table in data.get('weights', {}).items():
            weights.setdefault(setting, {}).update(
                {str(k): int(v) for k, v in table.items()})
        for name in ('low_max', 'medium_max'):
            if name in data.get('thresholds', {}):
                thresholds[name] = int(data['thresholds'][name])
    except (json.JSONDecodeError, OSError, AttributeError, TypeError, ValueError) as e:
        logger.error("Invalid risk weights file %s: %s; using defaults", path, e)
        return ({k: dict(v) for k, v in DEFAULT_RISK_WEIGHTS.items()},
                dict(DEFAULT_RISK_THRESHOLDS))

    if thresholds['low_max'] > thresholds['medium_max']:
        logger.error("Risk thresholds out of order in %s; using defaults", path)
        thresholds = dict(DEFAULT_RISK_THRESHOLDS)

    logger.info("Loaded risk weights from %s", path)
    return weights, thresholds
