"""Audit logging and reports."""

from .audit_logger import RegistryAuditLogger, generate_registry_report

__all__ = [
    'RegistryAuditLogger',
    'generate_registry_report'
]
