"""
EchoNate Core — Version Constants

Single source of truth for all version-related values.

Usage:
    from echonate.core.version import __version__, STATE_SCHEMA_VERSION
"""

# =============================================================================
# PACKAGE VERSION
# =============================================================================

__version__ = "2.0.0"


# =============================================================================
# PERSISTED STATE
# =============================================================================

# Informational only. Persisted state is versionless: it is merged over the
# built-in defaults on load, so unknown keys are ignored and missing keys
# fall back to defaults.
STATE_SCHEMA_VERSION = "2.0"

# Format marker written into every audit export
AUDIT_EXPORT_FORMAT = "JSON"


__all__ = [
    '__version__',
    'STATE_SCHEMA_VERSION',
    'AUDIT_EXPORT_FORMAT',
]
