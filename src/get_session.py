"""Interactive login and portable session export.

``authorize`` logs the account in once (QR code or phone code, with a 2FA
password when the account has one). ``print_session_string`` then exports
the session so later runs can start from SESSION_STRING without prompting.
"""

import asyncio
import logging
import os
from getpass import getpass
from typing import Awaitable, Callable, Dict, Tuple

import qrcode
from dotenv import load_dotenv
from telethon import TelegramClient, errors

from client import build_client, export_session
from core.session_codec import encode_session

load_dotenv()

LOGGER = logging.getLogger(__name__)

SEPARATOR = "=" * 80
QR_LOGIN_TIMEOUT = 120


async def _login_with_qr(client: TelegramClient) -> None:
    qr_login = await client.qr_login()
    qr = qrcode.QRCode(border=1)
    qr.add_data(qr_login.url)
    qr.make(fit=True)
    print("Scan with Telegram > Settings > Devices > Link Desktop Device:")
    qr.print_ascii(invert=True)
    await qr_login.wait(timeout=QR_LOGIN_TIMEOUT)


async def _login_with_phone(client: TelegramClient) -> None:
    phone = os.getenv("PHONE") or input("Phone number (international format): ").strip()
    await client.send_code_request(phone)
    await client.sign_in(phone=phone, code=input("Login code: ").strip())


# Menu key -> (LOGIN_METHOD value, label, login coroutine)
LOGIN_METHODS: Dict[str, Tuple[str, str, Callable[[TelegramClient], Awaitable[None]]]] = {
    "1": ("qr", "QR code", _login_with_qr),
    "2": ("phone", "Phone code", _login_with_phone),
}


def _choose_login() -> Callable[[TelegramClient], Awaitable[None]]:
    """Use LOGIN_METHOD when set, otherwise ask until a valid choice is made."""

    preset = (os.getenv("LOGIN_METHOD") or "").strip().lower()
    for method, _, login in LOGIN_METHODS.values():
        if method == preset:
            return login

    while True:
        print("\nLogin methods:")
        for key, (_, label, _) in LOGIN_METHODS.items():
            print(f"[{key}] {label}")
        print("[q] Exit\n")
        choice = input("tg-forward > ").strip().lower()
        if choice == "q":
            raise SystemExit(0)
        if choice in LOGIN_METHODS:
            return LOGIN_METHODS[choice][2]
        print(f"Invalid option. Choose one of: {', '.join(LOGIN_METHODS)} or q.")


async def authorize(client: TelegramClient) -> bool:
    """Log in if needed; return True when a new login happened."""

    if await client.is_user_authorized():
        return False

    login = _choose_login()
    try:
        await login(client)
    except errors.SessionPasswordNeededError:
        password = os.getenv("2FA") or getpass("2FA password: ")
        await client.sign_in(password=password)
    LOGGER.info("Login completed")
    return True


def print_session_string(client: TelegramClient) -> None:
    """Print the portable session string so later runs skip the login."""

    session_string = encode_session(export_session(client))
    print("\n" + SEPARATOR)
    print("Session authenticated successfully!")
    print(SEPARATOR)
    print("\nAdd this to your environment to skip the login on every restart:")
    print(f"\nSESSION_STRING={session_string}")
    print(f"\nSession size: {len(session_string)} characters")
    print("\n" + SEPARATOR + "\n")


async def main() -> None:
    client = build_client()
    await client.connect()

    await authorize(client)

    me = await client.get_me()
    LOGGER.info("Logged in as: %s", me.first_name)
    print_session_string(client)

    await client.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
