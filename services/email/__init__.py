"""
Email provider package for the FX digest.

Provides an abstraction layer over the delivery backends (SMTP, Resend).
"""

from .base import EmailProvider
from .resend_provider import ResendEmailProvider
from .smtp_provider import SMTPEmailProvider

__all__ = [
    "EmailProvider",
    "ResendEmailProvider",
    "SMTPEmailProvider",
]
