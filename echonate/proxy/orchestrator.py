#!/usr/bin/env python3
"""
EchoNate Control Plane — Process orchestrator.

EchoNateControlPlane wires the context, dispatcher and HTTP server
together and owns startup/shutdown. main() is the CLI entry point used by
``python -m echonate``.
"""

import argparse
import logging
import os
import signal
import sys
import threading
from pathlib import Path

from echonate.core.config import UnifiedConfig, load_config_from_file
from echonate.core.version import __version__
from echonate.proxy.api_server import ControlPlaneServer
from echonate.proxy.context import build_context
from echonate.proxy.dispatcher import ActionDispatcher

__all__ = ['EchoNateControlPlane', 'configure_logging', 'main']

logger = logging.getLogger("echonate.proxy.orchestrator")

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(config: UnifiedConfig) -> None:
    """Console plus a file under the log directory. Called once per process."""
    handlers = [logging.StreamHandler()]
    try:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.log_dir / "echonate.log", encoding='utf-8'))
    except OSError as e:
        print(f"  ⚠ Could not open log directory {config.log_dir}: {e}")
    logging.basicConfig(level=getattr(logging, config.log_level.upper(), logging.INFO),
                        format=LOG_FORMAT, handlers=handlers)


class EchoNateControlPlane:
    """Top-level object: one control plane per process."""

    def __init__(self, config: UnifiedConfig = None):
        self.config = config or UnifiedConfig()
        self.ctx = build_context(self.config)
        self.dispatcher = ActionDispatcher(self.ctx)
        self.server = ControlPlaneServer(self.dispatcher, self.config)
        self._stopped = threading.Event()

    def _print_startup_banner(self):
        status = self.dispatcher.status()
        print("\n" + "=" * 60)
        print(f"  EchoNate Control Plane v{__version__}")
        print("=" * 60)
        print(f"  Listening : http://{self.server.host}:{self.server.port}")
        print(f"  State     : {self.config.state_file}")
        print(f"  Mode      : {status['mode']}")
        print(f"  Risk      : {status['risk']['level']} (score {status['risk']['score']})")
        print(f"  Audit     : {status['audit']['events']} events, "
              f"chain {'verified' if status['audit']['chain_verified'] else 'BROKEN'}")
        print(f"  Terms     : {'accepted' if status['terms_accepted'] else 'not accepted'}")
        if not self.config.api_secret:
            print(f"  API secret: {self.server.api_secret}")
        for warning in status['warnings']:
            print(f"  ⚠ {warning}")
        print("=" * 60 + "\n")

    def start(self, block: bool = True) -> None:
        self._print_startup_banner()
        self.server.start(threaded=True)
        if block:
            try:
                self._stopped.wait()
            except KeyboardInterrupt:
                pass
            self.stop()

    def stop(self) -> None:
        if self._stopped.is_set():
            return
        logger.info("Shutting down control plane")
        self.dispatcher.shutdown()
        self._stopped.set()


def main():
    parser = argparse.ArgumentParser(
        description=f'EchoNate capability-gating control plane v{__version__}')
    parser.add_argument('--base-dir', default=None,
                        help='State/config directory (default: $ECHONATE_HOME or .echonate)')
    parser.add_argument('--host', default=None, help='Listen address')
    parser.add_argument('--port', type=int, default=None, help='Listen port')
    parser.add_argument('--confirmation-timeout', type=float, default=None,
                        help='Seconds to wait for a user confirmation')
    parser.add_argument('--effect-timeout', type=float, default=None,
                        help='Seconds an automation effect may run')
    parser.add_argument('--log-level', default=None,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    args = parser.parse_args()

    config = UnifiedConfig()
    if args.base_dir:
        config = UnifiedConfig(base_dir=Path(args.base_dir))

    # config.json BEFORE environment and CLI overrides
    load_config_from_file(config, config.base_dir / 'config' / 'config.json')

    secret_env = os.environ.get('ECHONATE_API_SECRET')
    if secret_env:
        config.api_secret = secret_env

    if args.host is not None:
        config.listen_host = args.host
    if args.port is not None:
        config.listen_port = args.port
    if args.confirmation_timeout is not None:
        config.confirmation_timeout_seconds = args.confirmation_timeout
    if args.effect_timeout is not None:
        config.effect_timeout_seconds = args.effect_timeout
    if args.log_level is not None:
        config.log_level = args.log_level

    configure_logging(config)

    plane = EchoNateControlPlane(config)
    signal.signal(signal.SIGTERM, lambda *_: plane.stop())
    plane.start()
    return 0


if __name__ == '__main__':
    sys.exit(main())
