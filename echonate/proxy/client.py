#!/usr/bin/env python3
"""
Control-Plane Client — requests-based client for a running server.

Transient connection failures and timeouts are retried with exponential
backoff. HTTP error statuses are not retried: the server already produced
a structured response (and an audit event) for the request.
"""

import logging
import time
from typing import Any, Dict, List

import requests

from echonate.core.constants import SECRET_HEADER

__all__ = ['ControlPlaneClient']

logger = logging.getLogger("echonate.proxy.client")


class ControlPlaneClient:
    """Client for the control-plane HTTP API."""

    MAX_RETRIES = 3
    RETRY_BACKOFF = 0.5  # seconds, doubles each retry

    def __init__(self, server_url: str = "http://127.0.0.1:11445",
                 api_secret: str = "", timeout: float = 90):
        self.server_url = server_url.rstrip('/')
        self.api_secret = api_secret
        # Long enough to cover a confirmation wait on the server
        self.timeout = timeout

    def _http_request(self, method: str, path: str, **kwargs) -> requests.Response:
        """HTTP request with retry and exponential backoff for transient failures."""
        kwargs.setdefault('timeout', self.timeout)
        kwargs.setdefault('headers', {})
        if self.api_secret:
            kwargs['headers'][SECRET_HEADER] = self.api_secret

        url = f"{self.server_url}{path}"
        last_err = None
        for attempt in range(self.MAX_RETRIES):
            try:
                return requests.request(method, url, **kwargs)
            except (requests.exceptions.ConnectionError,
                    requests.exceptions.Timeout) as e:
                last_err = e
                logger.debug("%s %s failed (attempt %d): %s", method, url, attempt + 1, e)
                if attempt < self.MAX_RETRIES - 1:
                    time.sleep(self.RETRY_BACKOFF * (2 ** attempt))
        raise last_err

    def _json(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        resp = self._http_request(method, path, **kwargs)
        if resp.status_code == 401:
            raise PermissionError("Control plane rejected the API secret")
        try:
            return resp.json()
        except ValueError:
            resp.raise_for_status()
            raise

    # ---- API ----

    def health(self) -> Dict[str, Any]:
        return self._json('GET', '/api/health')

    def status(self) -> Dict[str, Any]:
        return self._json('GET', '/api/status')

    def dispatch(self, action_type: str, payload: Dict[str, Any] = None) -> Dict[str, Any]:
        return self._json('POST', '/api/actions',
                          json={'type': action_type, 'payload': payload or {}})

    def observe(self, kind: str, url: str = "", details: Dict[str, Any] = None) -> Dict[str, Any]:
        return self._json('POST', '/api/detections',
                          json={'kind': kind, 'url': url, 'details': details or {}})

    def change_mode(self, mode: str, justification: str) -> Dict[str, Any]:
        return self.dispatch('change-mode', {'mode': mode, 'justification': justification})

    def update_config(self, key: str, value: Any) -> Dict[str, Any]:
        return self.dispatch('update-config', {'key': key, 'value': value})

    def export_audit(self) -> Dict[str, Any]:
        return self._json('GET', '/api/audit/export')

    def clear_audit(self, confirmed: bool) -> Dict[str, Any]:
        return self._json('POST', '/api/audit/clear', json={'confirmed': confirmed})

    def pending(self) -> List[Dict[str, Any]]:
        return self._json('GET', '/api/confirmations').get('confirmations', [])

    def confirm(self, confirmation_id: str) -> Dict[str, Any]:
        return self._json('POST', f'/api/confirmations/{confirmation_id}/confirm')

    def decline(self, confirmation_id: str) -> Dict[str, Any]:
        return self._json('POST', f'/api/confirmations/{confirmation_id}/decline')

    def cancel(self, confirmation_id: str) -> Dict[str, Any]:
        return self._json('POST', f'/api/confirmations/{confirmation_id}/cancel')
