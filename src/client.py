"""Telegram client factory and login flow for teledigest.

We explicitly manage the client's lifecycle (connect/authorize/disconnect)
so it is obvious when the session is created and when it ends.
"""

from __future__ import annotations

import logging
import os
from getpass import getpass

import qrcode
from dotenv import load_dotenv
from telethon import TelegramClient, errors

LOGGER = logging.getLogger(__name__)

QR_LOGIN_TIMEOUT_SECONDS = 120


def build_client() -> TelegramClient:
    """Create a Telethon client from environment variables.

    We read API_ID/API_HASH via python-dotenv to keep secrets out of the repo.
    The session name defaults to "teledigest" to create a local .session file.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    session_name = os.getenv("SESSION_NAME", "teledigest")

    # Fail fast on missing credentials to avoid an ambiguous login prompt.
    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")

    LOGGER.info("Initializing Telegram client")

    return TelegramClient(session_name, int(api_id), api_hash, connection_retries=5, retry_delay=1)


def _print_qr(url: str) -> None:
    qr = qrcode.QRCode(border=1)
    qr.add_data(url)
    qr.make(fit=True)
    qr.print_ascii(invert=True)


def _second_factor() -> str:
    return os.getenv("2FA") or getpass("2FA password: ")


async def _login_with_qr(client: TelegramClient) -> None:
    qr_login = await client.qr_login()
    _print_qr(qr_login.url)
    print("Scan the QR code from Telegram > Settings > Devices.")
    await qr_login.wait(timeout=QR_LOGIN_TIMEOUT_SECONDS)


async def _login_with_phone(client: TelegramClient) -> None:
    phone = os.getenv("PHONE") or input("Phone number (international format): ").strip()
    await client.send_code_request(phone)
    code = input("Login code: ").strip()
    await client.sign_in(phone=phone, code=code)


async def authorize(client: TelegramClient) -> None:
    """Log in interactively unless the session is already authorized.

    LOGIN_METHOD=qr|phone selects the flow; phone is the default because it
    also works on headless hosts.
    """

    if await client.is_user_authorized():
        return

    method = (os.getenv("LOGIN_METHOD") or "phone").strip().lower()
    try:
        if method == "qr":
            await _login_with_qr(client)
        else:
            await _login_with_phone(client)
    except errors.SessionPasswordNeededError:
        await client.sign_in(password=_second_factor())


async def connect(client: TelegramClient) -> None:
    """Connect and authorize, raising RuntimeError if Telegram is unreachable."""

    try:
        await client.connect()
    except (OSError, ConnectionError) as exc:
        raise RuntimeError(f"Could not connect to Telegram: {exc}") from exc
    await authorize(client)
    me = await client.get_me()
    if me is None:
        raise RuntimeError("Telegram login did not complete")
    LOGGER.info(
        "Connected as %s (@%s)",
        " ".join(part for part in [me.first_name, me.last_name] if part),
        me.username or "no_username",
    )
