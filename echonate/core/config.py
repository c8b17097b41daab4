"""
EchoNate Configuration — UnifiedConfig
========================================
Central configuration dataclass with defaults for all process settings,
plus the config.json overlay loader.

Priority (lowest → highest): dataclass defaults → config/config.json →
environment → CLI flags.

Import from: echonate.core.config
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

from echonate.core.constants import (
    DEFAULT_CONFIRMATION_TIMEOUT, DEFAULT_EFFECT_TIMEOUT,
)

__all__ = ['UnifiedConfig', 'load_config_from_file']

logger = logging.getLogger("echonate.core.config")


@dataclass
class UnifiedConfig:
    listen_host: str = "127.0.0.1"
    listen_port: int = 11445

    base_dir: Path = field(default_factory=lambda: Path(os.environ.get('ECHONATE_HOME', '.echonate')))
    state_file: Path = None
    key_file: Path = None
    log_dir: Path = None
    risk_weights_file: Path = None

    confirmation_timeout_seconds: float = DEFAULT_CONFIRMATION_TIMEOUT
    effect_timeout_seconds: float = DEFAULT_EFFECT_TIMEOUT

    # Shared secret for the HTTP API. Empty → generated at startup.
    api_secret: str = ""
    cors_allowed_origins: List[str] = field(default_factory=list)

    # CAPTCHA provider API keys, by provider name
    captcha_api_keys: Dict[str, str] = field(default_factory=dict)

    # Pinned automation levels, {action type: level}
    capability_overrides: Dict[str, str] = field(default_factory=dict)

    log_level: str = "INFO"

    def __post_init__(self):
        self.base_dir = Path(self.base_dir)
        if self.state_file is None:
            self.state_file = self.base_dir / "data" / "state.json"
        if self.key_file is None:
            self.key_file = self.base_dir / "data" / "vault.key"
        if self.log_dir is None:
            self.log_dir = self.base_dir / "logs"
        if self.risk_weights_file is None:
            self.risk_weights_file = self.base_dir / "config" / "risk_weights.json"


def load_config_from_file(config: UnifiedConfig, path: Path) -> bool:
    """Overlay values from a config.json file onto ``config``.

    Missing file is not an error. Returns True if a file was applied.
    """
    path = Path(path)
    if not path.exists():
        return False
    try:
        file_cfg = json.loads(path.read_text(encoding='utf-8'))
    except (json.JSONDecodeError, OSError) as e:
        logger.error("Cannot read config file %s: %s", path, e)
        return False

    server = file_cfg.get('server', {})
    if 'host' in server:
        config.listen_host = server['host']
    if 'port' in server:
        config.listen_port = int(server['port'])
    if 'cors_allowed_origins' in server:
        config.cors_allowed_origins = list(server['cors_allowed_origins'])

    timeouts = file_cfg.get('timeouts', {})
    if 'confirmation_seconds' in timeouts:
        config.confirmation_timeout_seconds = float(timeouts['confirmation_seconds'])
    if 'effect_seconds' in timeouts:
        config.effect_timeout_seconds = float(timeouts['effect_seconds'])

    captcha = file_cfg.get('captcha', {})
    if 'api_keys' in captcha:
        config.captcha_api_keys = dict(captcha['api_keys'])

    capabilities = file_cfg.get('capabilities', {})
    if 'overrides' in capabilities:
        config.capability_overrides = dict(capabilities['overrides'])

    paths = file_cfg.get('paths', {})
    if 'state_file' in paths:
        config.state_file = Path(paths['state_file'])
    if 'risk_weights_file' in paths:
        config.risk_weights_file = Path(paths['risk_weights_file'])

    if 'log_level' in file_cfg:
        config.log_level = str(file_cfg['log_level']).upper()

    logger.info("Loaded configuration overlay from %s", path)
    return True
