"""One-time code retrieval from an IMAP mailbox."""

from __future__ import annotations

import asyncio
import email
import imaplib
import logging
import re
import ssl
from abc import ABC, abstractmethod
from email.message import Message
from typing import Final

from .config import MailboxConnection

_LOGGER = logging.getLogger(__name__)

INBOX: Final = "INBOX"

_H1 = re.compile(r"<h1[^>]*>(.*?)</h1>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]+>")
_CODE = re.compile(r"\b(\d{6})\b")


def extract_code(html: str) -> str | None:
    """Pull the 6-digit code out of the Arlo e-mail body.

    The code is the text of the first ``<h1>``; any 6-digit group in the body
    is used as a fallback.
    """
    if match := _H1.search(html):
        text = _TAG.sub("", match.group(1))
        text = "".join(text.split())
        if text.isdigit():
            return text
    if match := _CODE.search(_TAG.sub(" ", html)):
        return match.group(1)
    return None


def _message_html(message: Message) -> str:
    for part in message.walk():
        if part.get_content_type() in ("text/html", "text/plain"):
            payload = part.get_payload(decode=True)
            if isinstance(payload, bytes):
                charset = part.get_content_charset() or "utf-8"
                return payload.decode(charset, errors="replace")
    return ""


class OneTimeCodeSource(ABC):
    """Supplies the one-time code delivered by the e-mail factor."""

    async def prepare(self, connection: MailboxConnection) -> None:
        """Remove stale code messages before a new code is requested."""

    @abstractmethod
    async def fetch_code(
        self, connection: MailboxConnection, subject_filter: str
    ) -> str | None:
        """Return the code from the newest unseen matching message.

        The message is deleted once read. Returns None if no message has
        arrived yet.
        """


class ImapCodeSource(OneTimeCodeSource):
    """Reads codes over IMAP4-SSL in the default executor."""

    def __init__(self, ssl_context: ssl.SSLContext | None = None) -> None:
        self._ssl_context = ssl_context

    async def prepare(self, connection: MailboxConnection) -> None:
        await asyncio.get_running_loop().run_in_executor(None, self._tidy, connection)

    async def fetch_code(
        self, connection: MailboxConnection, subject_filter: str
    ) -> str | None:
        return await asyncio.get_running_loop().run_in_executor(
            None, self._fetch, connection, subject_filter
        )

    def _connect(self, connection: MailboxConnection) -> imaplib.IMAP4_SSL:
        _LOGGER.debug("Connecting to mail server %s:%s", connection.host, connection.port)
        client = imaplib.IMAP4_SSL(
            connection.host,
            connection.port,
            ssl_context=self._ssl_context or ssl.create_default_context(),
        )
        client.login(connection.user, connection.password.get_secret_value())
        client.select(INBOX)
        return client

    @staticmethod
    def _close(client: imaplib.IMAP4_SSL) -> None:
        try:
            client.close()
        finally:
            client.logout()

    @staticmethod
    def _search(client: imaplib.IMAP4_SSL, *criteria: str) -> list[bytes]:
        status, data = client.search(None, *criteria)
        if status != "OK" or not data or not data[0]:
            return []
        return data[0].split()

    @staticmethod
    def _delete(client: imaplib.IMAP4_SSL, ids: list[bytes]) -> None:
        for message_id in ids:
            client.store(message_id.decode(), "+FLAGS", "\\Deleted")
        client.expunge()

    def _tidy(self, connection: MailboxConnection) -> None:
        client = self._connect(connection)
        try:
            ids = self._search(client, "SUBJECT", f'"{connection.subject_filter}"')
            if ids:
                _LOGGER.debug("Removing %d old code e-mail(s)", len(ids))
                self._delete(client, ids)
        finally:
            self._close(client)

    def _fetch(self, connection: MailboxConnection, subject_filter: str) -> str | None:
        client = self._connect(connection)
        try:
            ids = self._search(client, "UNSEEN", "SUBJECT", f'"{subject_filter}"')
            if not ids:
                _LOGGER.debug("No code e-mail found")
                return None

            latest = ids[-1]
            status, data = client.fetch(latest.decode(), "(RFC822)")
            if status != "OK" or not data or not isinstance(data[0], tuple):
                _LOGGER.warning("Unable to fetch code e-mail %s", latest)
                return None

            message = email.message_from_bytes(data[0][1])
            code = extract_code(_message_html(message))
            self._delete(client, [latest])
            if code is None:
                _LOGGER.warning("Code e-mail did not contain a code")
            return code
        finally:
            self._close(client)
