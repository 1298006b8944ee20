"""Application services."""

from gymbook.services.auth_service import AuthResult, AuthService, RegistrationData
from gymbook.services.email_service import EmailMessage, EmailService

__all__ = ["AuthResult", "AuthService", "EmailMessage", "EmailService", "RegistrationData"]
