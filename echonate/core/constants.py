"""
EchoNate Constants — Numeric Values, Limits, and Fixed Tables
==============================================================
Token sizes, timeouts, persisted key names, redaction fields and
challenge header indicators.

Import from: echonate.core.constants
"""

# =============================================================================
# TOKEN / CRYPTO SIZES (bytes of randomness)
# =============================================================================

EVENT_ID_BYTES = 16             # 32 hex chars for audit event IDs
CONFIRMATION_ID_BYTES = 8       # 16 hex chars for pending confirmation IDs
API_SECRET_BYTES = 32           # 64 hex chars for the HTTP API secret
AES_KEY_BITS = 256
AES_NONCE_BYTES = 12

# =============================================================================
# TIMEOUTS (seconds)
# =============================================================================

DEFAULT_CONFIRMATION_TIMEOUT = 60
DEFAULT_EFFECT_TIMEOUT = 30
MAX_EFFECT_WORKERS = 4

# =============================================================================
# PERSISTED STATE KEYS
# =============================================================================

KEY_CONFIG = 'config'
KEY_MODE = 'mode'
KEY_CREDENTIALS = 'credentials'
KEY_AUDIT_LOG = 'audit_log'
KEY_TERMS_ACCEPTED = 'terms_accepted'

PERSISTED_KEYS = (
    KEY_CONFIG, KEY_MODE, KEY_CREDENTIALS, KEY_AUDIT_LOG, KEY_TERMS_ACCEPTED,
)

# =============================================================================
# AUDIT CHAIN
# =============================================================================

GENESIS_HASH = "0" * 64

# =============================================================================
# DISPLAY REDACTION
# =============================================================================

SENSITIVE_FORM_FIELDS = frozenset({
    'password', 'ssn', 'creditCard', 'credit_card', 'cvv',
})
REDACTED = '***REDACTED***'

# =============================================================================
# BOT-CHALLENGE RESPONSE HEADERS
# =============================================================================

# Header name → vendor. Order matters: first match names the challenge.
CHALLENGE_HEADER_INDICATORS = (
    ('cf-ray', 'cloudflare'),
    ('x-akamai-request', 'akamai'),
    ('x-datadome', 'datadome'),
    ('x-sucuri-id', 'sucuri'),
)

HTTP_TOO_MANY_REQUESTS = 429
HTTP_FORBIDDEN = 403

# =============================================================================
# HTTP CONTROL SURFACE
# =============================================================================

SECRET_HEADER = 'X-EchoNate-Secret'
