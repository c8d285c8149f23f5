"""Service layer: credential engine, authorization rules, bootstrap"""
from filauth.services.auth_service import AuthService
from filauth.services.bootstrap import DEFAULT_ADMIN_NAME, ensure_default_admin
from filauth.services.credentials import CredentialEngine

__all__ = ["AuthService", "CredentialEngine", "DEFAULT_ADMIN_NAME", "ensure_default_admin"]
