"""
Audit — Append-only, chain-hashed record of gate decisions.

Classes:
- AuditLog: Record, export, verify and (confirmed) clear
"""

from echonate.core.audit.log import AuditLog

__all__ = ['AuditLog']
