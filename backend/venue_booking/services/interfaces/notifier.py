"""
Notification port.
The engine depends on this interface only; concrete senders live in
the infrastructure layer and are injected at startup.
"""

from abc import ABC, abstractmethod


class Notifier(ABC):
    """
    Interface for outbound user notifications.

    Implementations:
    - GatewayNotifier: Samaya SMS over HTTP + SMTP email
    - LoggingNotifier: logs the message, used when no sender is configured

    Both methods may raise GatewayUnavailableError; callers treat
    notification as best-effort.
    """

    @abstractmethod
    async def send_sms(self, phone: str, text: str) -> None:
        pass

    @abstractmethod
    async def send_email(self, to: str, subject: str, body: str) -> None:
        pass

    async def aclose(self) -> None:
        """Release network resources held by the sender."""
