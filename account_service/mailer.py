"""Verification code generation and delivery through an HTTP mail relay."""

import os
import logging
import secrets
import string
import httpx
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

VERIFICATION_CODE_LENGTH = 6
VERIFICATION_CODE_EXPIRATION_MINUTES = int(os.getenv("VERIFICATION_CODE_EXPIRATION_MINUTES", 10))

MAIL_API_URL = os.getenv("MAIL_API_URL")
MAIL_API_KEY = os.getenv("MAIL_API_KEY")
MAIL_FROM = os.getenv("MAIL_FROM", "no-reply@localhost")
MAIL_TIMEOUT_SECONDS = float(os.getenv("MAIL_TIMEOUT_SECONDS", 10))

if not MAIL_API_URL:
    logger.error("MAIL_API_URL is not set. Sending verification codes will fail.")


def generate_verification_code(length: int = VERIFICATION_CODE_LENGTH) -> str:
    """Random numeric code of the given length."""
    return "".join(secrets.choice(string.digits) for _ in range(length))


def build_verification_message(email: str, code: str) -> dict:
    return {
        "from": MAIL_FROM,
        "to": email,
        "subject": "[회원가입] 이메일 인증번호",
        "text": (
            f"인증번호는 {code} 입니다.\n"
            f"이 인증번호는 {VERIFICATION_CODE_EXPIRATION_MINUTES}분 후에 만료됩니다."
        ),
    }


async def send_verification_email(email: str, code: str) -> bool:
    """
    Hands the verification email to the mail relay using httpx.
    Returns True on success, False otherwise.
    """
    if not MAIL_API_URL:
        logger.error("Cannot send email: MAIL_API_URL is not configured.")
        return False

    headers = {"Authorization": f"Bearer {MAIL_API_KEY}"} if MAIL_API_KEY else {}

    async with httpx.AsyncClient(timeout=MAIL_TIMEOUT_SECONDS) as client:
        try:
            response = await client.post(MAIL_API_URL, json=build_verification_message(email, code), headers=headers)
            response.raise_for_status()
            logger.info(f"Verification email sent to {email}")
            return True
        except (httpx.RequestError, httpx.HTTPStatusError) as exc:
            logger.error(f"Error sending verification email to {email}: {exc}")
            if isinstance(exc, httpx.HTTPStatusError):
                logger.error(f"Mail relay response: {exc.response.text}")
            return False
