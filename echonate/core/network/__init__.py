"""
Network — What the page-observation layer reports, and who solves CAPTCHAs.

- detector : HTTP response / form / CAPTCHA classification, detection
             event → ActionRequest wrapping, display redaction
- providers: CAPTCHA provider registry
"""

from echonate.core.network.detector import (
    classify_response,
    detect_challenge,
    identify_captcha_type,
    identify_challenge_type,
    identify_form_type,
    observe_response,
    sanitize_for_display,
    wrap_detection_event,
)
from echonate.core.network.providers import (
    CaptchaProvider,
    CaptchaProviderRegistry,
    DEFAULT_PROVIDER,
    DEFAULT_PROVIDERS,
)

__all__ = [
    'classify_response', 'detect_challenge', 'identify_captcha_type',
    'identify_challenge_type', 'identify_form_type', 'observe_response',
    'sanitize_for_display', 'wrap_detection_event',
    'CaptchaProvider', 'CaptchaProviderRegistry', 'DEFAULT_PROVIDER', 'DEFAULT_PROVIDERS',
]
