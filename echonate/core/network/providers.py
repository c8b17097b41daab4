#!/usr/bin/env python3
"""
EchoNate Core Network — CAPTCHA Provider Registry
===================================================
Known external CAPTCHA-solving services with their cost per solve,
published success rate and supported CAPTCHA types. API keys come from
configuration (``captcha.api_keys`` in config.json); a provider without a
key cannot be used for solving.

Import from: echonate.core.network.providers
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Tuple

from echonate.core.types import ProviderNotConfiguredError

__all__ = ['CaptchaProvider', 'CaptchaProviderRegistry', 'DEFAULT_PROVIDERS', 'DEFAULT_PROVIDER']

logger = logging.getLogger("echonate.core.network.providers")

DEFAULT_PROVIDER = '2captcha'


@dataclass(frozen=True)
class CaptchaProvider:
    name: str
    endpoint: str
    cost: float
    success_rate: float
    supported_types: Tuple[str, ...] = ()
    api_key: str = field(default="", repr=False)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def to_dict(self) -> dict:
        """Public view. The API key is reported as present/absent only."""
        return {
            'name': self.name,
            'endpoint': self.endpoint,
            'cost': self.cost,
            'success_rate': self.success_rate,
            'supported_types': list(self.supported_types),
            'configured': self.configured,
        }


DEFAULT_PROVIDERS: Tuple[CaptchaProvider, ...] = (
    CaptchaProvider('2captcha', 'https://2captcha.com/in.php', 0.0025, 0.92,
                    ('image', 'recaptcha', 'hcaptcha')),
    CaptchaProvider('anticaptcha', 'https://api.anti-captcha.com', 0.002, 0.89,
                    ('image', 'recaptcha', 'hcaptcha', 'funcaptcha')),
    CaptchaProvider('capsolver', 'https://api.capsolver.com', 0.003, 0.95,
                    ('image', 'recaptcha', 'hcaptcha', 'cloudflare')),
)


class CaptchaProviderRegistry:

    def __init__(self, api_keys: Mapping[str, str] = None,
                 providers=DEFAULT_PROVIDERS):
        keys = dict(api_keys or {})
        self._providers: Dict[str, CaptchaProvider] = {
            p.name: replace(p, api_key=keys.get(p.name, p.api_key)) for p in providers
        }
        unknown = set(keys) - set(self._providers)
        if unknown:
            logger.warning("API keys configured for unknown CAPTCHA providers: %s",
                           ', '.join(sorted(unknown)))

    def names(self) -> List[str]:
        return list(self._providers)

    def cost(self, name: str) -> float:
        """Cost per solve, 0 for an unknown provider."""
        provider = self._providers.get(name)
        return provider.cost if provider else 0

    def get(self, name: str) -> CaptchaProvider:
        """Return a provider that is usable for solving.

        Raises ProviderNotConfiguredError if unknown or missing an API key.
        """
        provider = self._providers.get(name)
        if provider is None or not provider.configured:
            raise ProviderNotConfiguredError(f"CAPTCHA provider {name} not configured")
        return provider

    def describe(self) -> Dict[str, dict]:
        return {name: p.to_dict() for name, p in self._providers.items()}
