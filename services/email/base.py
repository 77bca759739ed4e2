"""
Abstract base class for email providers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class EmailProvider(ABC):
    """
    Common interface for every delivery backend.

    Implementations raise on delivery failure; callers decide whether one
    failed recipient aborts the run.
    """

    def __init__(
        self,
        from_email: Optional[str] = None,
        from_name: str = "FX Briefing",
    ):
        self.from_email = from_email
        self.from_name = from_name

    @property
    def sender(self) -> str:
        return f"{self.from_name} <{self.from_email}>"

    @abstractmethod
    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
    ) -> str:
        """
        Send one email.

        Returns:
            Message ID for tracking purposes
        """

    @abstractmethod
    def is_configured(self) -> bool:
        """True when every setting needed to send is present."""
