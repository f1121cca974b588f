"""ZeptoMail implementation of MailSender.

One message shape for every code-bearing email: the purpose selects the
subject and the Jinja2 template, the code itself only ever appears in the
rendered body.
"""

import os
from typing import Optional

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import EmailSettings
from errors import EmailDispatchError
from infrastructure.http_client import HttpClient
from schemas.models.otp import OtpPurpose
from shared.logging import get_logger

log = get_logger(__name__)

_ZEPTO_API_URL = "https://api.zeptomail.in/v1.1/email"
_DEFAULT_TEMPLATE_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__))),
    "templates",
    "emails",
)

# purpose -> (subject, template, plain-text lead)
_MESSAGES: dict[str, tuple[str, str, str]] = {
    OtpPurpose.EMAIL_VERIFICATION.value: (
        "Verify your email - {app_name}",
        "email_verification.html",
        "Your verification code is",
    ),
    OtpPurpose.PASSWORD_RESET.value: (
        "Reset your password - {app_name}",
        "password_reset.html",
        "Your password reset code is",
    ),
    OtpPurpose.PASSWORD_CHANGE.value: (
        "Confirm your password change - {app_name}",
        "password_change.html",
        "Your password change code is",
    ),
    OtpPurpose.EMAIL_CHANGE.value: (
        "Confirm your new email - {app_name}",
        "email_change.html",
        "Your email change code is",
    ),
}


class ZeptoMailProvider:
    def __init__(
        self,
        settings: EmailSettings,
        http_client: HttpClient,
        app_url: str = "https://poemvy.com",
        app_name: str = "Poemvy",
        ttl_minutes: Optional[dict[str, int]] = None,
        template_dir: str = _DEFAULT_TEMPLATE_DIR,
    ) -> None:
        self._settings = settings
        self._http = http_client
        self._app_url = app_url
        self._app_name = app_name
        self._ttl_minutes = ttl_minutes or {}
        self._jinja = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def _auth_header(self) -> str:
        token = self._settings.zepto_api_token
        if not token.startswith("Zoho-enczapikey "):
            token = f"Zoho-enczapikey {token}"
        return token

    def render(
        self, purpose: str, code: str, user_name: Optional[str] = None
    ) -> tuple[str, str, str]:
        """Return (subject, html_body, text_body) for *purpose*."""
        if purpose not in _MESSAGES:
            raise ValueError(f"unknown code purpose: {purpose!r}")
        subject, template_name, lead = _MESSAGES[purpose]
        minutes = self._ttl_minutes.get(purpose, 5)
        html_body = self._jinja.get_template(template_name).render(
            otp_code=code,
            user_name=user_name,
            app_url=self._app_url,
            app_name=self._app_name,
            expires_minutes=minutes,
        )
        text_body = (
            f"Hello{f' {user_name}' if user_name else ''},\n\n"
            f"{lead}: {code}\n\n"
            f"This code expires in {minutes} minutes. "
            f"If you did not request it, you can ignore this email.\n\n"
            f"{self._app_name}"
        )
        return subject.format(app_name=self._app_name), html_body, text_body

    async def send_code(
        self,
        to_email: str,
        purpose: str,
        code: str,
        user_name: Optional[str] = None,
    ) -> None:
        if not self._settings.zepto_api_token:
            log.error("email_send_failed", purpose=purpose, reason="token_not_configured")
            raise EmailDispatchError("email delivery is not configured")

        subject, html_body, text_body = self.render(purpose, code, user_name)
        payload: dict = {
            "from": {
                "address": self._settings.zepto_from_email,
                "name": self._settings.zepto_from_name,
            },
            "to": [
                {
                    "email_address": {
                        "address": to_email,
                        "name": user_name or to_email,
                    }
                }
            ],
            "subject": subject,
            "htmlbody": html_body,
            "textbody": text_body,
        }
        headers = {"Authorization": self._auth_header()}

        try:
            response = await self._http.post_json(
                _ZEPTO_API_URL, payload, headers=headers
            )
        except httpx.HTTPError as e:
            log.error(
                "email_send_error",
                purpose=purpose,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise EmailDispatchError("failed to send email") from e

        if response.status_code not in (200, 201, 202):
            log.error(
                "email_send_failed",
                purpose=purpose,
                status_code=response.status_code,
                response=response.text[:200],
            )
            raise EmailDispatchError("failed to send email")

        log.info("email_sent", purpose=purpose)
