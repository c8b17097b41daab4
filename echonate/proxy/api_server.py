#!/usr/bin/env python3
"""
Control-Plane API Server — Flask HTTP surface for the dispatcher.

Routes (all require the X-EchoNate-Secret header except /api/health):
    GET  /api/health
    GET  /api/status
    POST /api/actions                      {type, payload}
    POST /api/detections                   {kind, url, details}
    GET  /api/audit/export
    POST /api/audit/clear                  {confirmed: true}
    GET  /api/confirmations
    POST /api/confirmations/<id>/confirm
    POST /api/confirmations/<id>/decline
    POST /api/confirmations/<id>/cancel

CORS is restricted to localhost origins plus configured extras.
"""

import hmac
import logging
import secrets
import threading

from flask import Flask, request as flask_request, jsonify
from flask_cors import CORS

from echonate.core.config import UnifiedConfig
from echonate.core.constants import API_SECRET_BYTES, SECRET_HEADER
from echonate.core.types import ActionType, Outcome
from echonate.core.version import __version__
from echonate.proxy.dispatcher import ActionDispatcher

__all__ = ['ControlPlaneServer', 'SECRET_HEADER']

logger = logging.getLogger("echonate.proxy.api_server")


# Failure kind → HTTP status. Kinds not listed map by outcome.
_ERROR_STATUS = {
    'CredentialNotFoundError': 404,
    'EffectTimeoutError': 504,
    'AutomationError': 502,
    'AuditDisabledError': 409,
    'ProviderNotConfiguredError': 409,
}
_OUTCOME_STATUS = {
    Outcome.DENIED: 403,
    Outcome.CANCELLED: 409,
    Outcome.ERRORED: 400,
}


def _http_status(response) -> int:
    if response.success:
        return 200
    return _ERROR_STATUS.get(response.error_kind, _OUTCOME_STATUS.get(response.outcome, 400))


class ControlPlaneServer:
    """Local HTTP control surface over one ActionDispatcher."""

    def __init__(self, dispatcher: ActionDispatcher, config: UnifiedConfig = None):
        self.dispatcher = dispatcher
        self.broker = dispatcher.ctx.broker
        self.config = config or dispatcher.ctx.config
        self.host = self.config.listen_host
        self.port = self.config.listen_port
        self._api_secret = self.config.api_secret or secrets.token_hex(API_SECRET_BYTES)
        self.app = self._create_flask_app()

    @property
    def api_secret(self) -> str:
        return self._api_secret

    def _verify_api_secret(self) -> bool:
        """Timing-safe verification of API secret from request headers."""
        provided = flask_request.headers.get(SECRET_HEADER, '')
        return hmac.compare_digest(provided, self._api_secret)

    def _create_flask_app(self) -> Flask:
        """Create and configure the Flask application with all routes."""
        app = Flask(__name__)
        allowed_origins = [
            "http://localhost:*", "https://localhost:*",
            "http://127.0.0.1:*", "https://127.0.0.1:*",
            "http://[::1]:*", "https://[::1]:*",
        ]
        if self.config.cors_allowed_origins:
            allowed_origins.extend(self.config.cors_allowed_origins)
        CORS(app, resources={r"/api/*": {"origins": allowed_origins}},
             allow_headers=['Content-Type', SECRET_HEADER])

        @app.before_request
        def require_secret():
            if flask_request.path == '/api/health' or flask_request.method == 'OPTIONS':
                return None
            if not self._verify_api_secret():
                logger.warning("Rejected unauthenticated %s %s",
                               flask_request.method, flask_request.path)
                return jsonify({'error': 'Unauthorized'}), 401
            return None

        @app.route('/api/health')
        def health():
            return jsonify({'status': 'ok', 'server': 'echonate', 'version': __version__})

        @app.route('/api/status')
        def status():
            return jsonify(self.dispatcher.status())

        @app.route('/api/actions', methods=['POST'])
        def dispatch_action():
            data = flask_request.get_json(silent=True)
            if data is None:
                return jsonify({'success': False, 'error': 'JSON body required',
                                'error_kind': 'InvalidActionError'}), 400
            response = self.dispatcher.dispatch(data)
            return jsonify(response.to_dict()), _http_status(response)

        @app.route('/api/detections', methods=['POST'])
        def observe_detection():
            data = flask_request.get_json(silent=True)
            if not isinstance(data, dict):
                return jsonify({'success': False, 'error': 'JSON object required',
                                'error_kind': 'InvalidActionError'}), 400
            response = self.dispatcher.observe(data)
            return jsonify(response.to_dict()), _http_status(response)

        @app.route('/api/audit/export')
        def export_audit():
            response = self.dispatcher.dispatch({'type': ActionType.EXPORT_AUDIT.value})
            return jsonify(response.to_dict()), _http_status(response)

        @app.route('/api/audit/clear', methods=['POST'])
        def clear_audit():
            data = flask_request.get_json(silent=True)
            if data is None:
                data = {}
            if not isinstance(data, dict):
                return jsonify({'success': False, 'error': 'JSON object required',
                                'error_kind': 'InvalidActionError'}), 400
            response = self.dispatcher.clear_audit(data.get('confirmed') is True)
            return jsonify(response.to_dict()), _http_status(response)

        @app.route('/api/confirmations')
        def list_confirmations():
            pending = self.broker.get_all_pending() if self.broker else []
            return jsonify({'confirmations': pending})

        @app.route('/api/confirmations/<confirmation_id>/<choice>', methods=['POST'])
        def resolve_confirmation(confirmation_id, choice):
            if self.broker is None:
                return jsonify({'error': 'No confirmation broker'}), 404
            actions = {
                'confirm': self.broker.confirm,
                'decline': self.broker.decline,
                'cancel': self.broker.cancel,
            }
            if choice not in actions:
                return jsonify({'error': f'Unknown choice: {choice}'}), 400
            if not actions[choice](confirmation_id):
                return jsonify({'status': 'not_found'}), 404
            return jsonify({'status': choice, 'id': confirmation_id})

        return app

    def start(self, threaded: bool = True):
        """Start serving. Threaded mode returns the daemon thread."""
        logger.info("Control plane listening on http://%s:%s", self.host, self.port)
        if threaded:
            t = threading.Thread(
                target=self.app.run,
                kwargs={'host': self.host, 'port': self.port, 'debug': False,
                        'use_reloader': False, 'threaded': True},
                daemon=True)
            t.start()
            return t
        self.app.run(host=self.host, port=self.port, debug=False,
                     use_reloader=False, threaded=True)
        return None
