"""MailSender protocol; services depend on this, not the concrete implementation."""

from typing import Optional, Protocol


class MailSender(Protocol):
    async def send_code(
        self,
        to_email: str,
        purpose: str,
        code: str,
        user_name: Optional[str] = None,
    ) -> None:
        """Deliver a one-time *code* for *purpose*.

        Raises:
            EmailDispatchError: the provider rejected the message or was unreachable.
        """
        ...
