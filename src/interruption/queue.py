"""Queue transport for interruption messages.

The controller only needs three things from the broker: its name, a batch
of messages, and a way to delete a message once it is handled. SQSQueue is
the production transport; tests substitute an in-memory queue.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Protocol

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import (
    DEFAULT_QUEUE_VISIBILITY_TIMEOUT_SECONDS,
    DEFAULT_QUEUE_WAIT_SECONDS,
    MAX_MESSAGES_PER_BATCH,
)

logger = logging.getLogger(__name__)


class QueueError(Exception):
    """Raised when the queue cannot be reached or rejects a request."""

    pass


@dataclass(frozen=True)
class QueueMessage:
    """One message received from the queue."""

    message_id: str
    receipt_handle: str
    body: str | None


class QueueTransport(Protocol):
    """Minimal broker interface used by the reconciler."""

    @property
    def name(self) -> str: ...

    async def fetch_batch(self) -> list[QueueMessage]: ...

    async def delete(self, message: QueueMessage) -> None: ...


def _error_code(exc: BaseException) -> str:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code", "")
    return type(exc).__name__


class SQSQueue:
    """SQS-backed queue transport.

    A client is opened per call from a shared session, the queue URL is
    resolved once in connect().
    """

    def __init__(
        self,
        session: aioboto3.Session,
        name: str,
        url: str,
        *,
        region: str | None = None,
        wait_seconds: int = DEFAULT_QUEUE_WAIT_SECONDS,
        visibility_timeout_seconds: int = DEFAULT_QUEUE_VISIBILITY_TIMEOUT_SECONDS,
    ) -> None:
        self._session = session
        self._name = name
        self._url = url
        self._region = region
        self._wait_seconds = wait_seconds
        self._visibility_timeout = visibility_timeout_seconds

    @classmethod
    async def connect(
        cls,
        name: str,
        *,
        region: str | None = None,
        session: aioboto3.Session | None = None,
        wait_seconds: int = DEFAULT_QUEUE_WAIT_SECONDS,
        visibility_timeout_seconds: int = DEFAULT_QUEUE_VISIBILITY_TIMEOUT_SECONDS,
    ) -> SQSQueue:
        """Resolve the queue URL and build a transport.

        Raises:
            QueueError: If the queue does not exist or cannot be reached.
        """
        session = session if session is not None else aioboto3.Session()
        try:
            async with session.client("sqs", region_name=region) as client:
                response = await client.get_queue_url(QueueName=name)
        except (ClientError, BotoCoreError) as e:
            raise QueueError(f"resolving url of queue {name} ({_error_code(e)}): {e}") from e

        return cls(
            session,
            name,
            response["QueueUrl"],
            region=region,
            wait_seconds=wait_seconds,
            visibility_timeout_seconds=visibility_timeout_seconds,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def url(self) -> str:
        return self._url

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[Any]:
        async with self._session.client("sqs", region_name=self._region) as client:
            yield client

    async def fetch_batch(self) -> list[QueueMessage]:
        """Long-poll the queue for up to MAX_MESSAGES_PER_BATCH messages.

        Raises:
            QueueError: If the receive call fails.
        """
        try:
            async with self._client() as client:
                response = await client.receive_message(
                    QueueUrl=self._url,
                    MaxNumberOfMessages=MAX_MESSAGES_PER_BATCH,
                    VisibilityTimeout=self._visibility_timeout,
                    WaitTimeSeconds=self._wait_seconds,
                    AttributeNames=["All"],
                    MessageAttributeNames=["All"],
                )
        except (ClientError, BotoCoreError) as e:
            raise QueueError(f"receiving messages from {self._name} ({_error_code(e)}): {e}") from e

        return [
            QueueMessage(
                message_id=raw.get("MessageId", ""),
                receipt_handle=raw.get("ReceiptHandle", ""),
                body=raw.get("Body"),
            )
            for raw in response.get("Messages", [])
        ]

    async def delete(self, message: QueueMessage) -> None:
        """Delete a handled message.

        Raises:
            QueueError: If the delete call fails.
        """
        try:
            async with self._client() as client:
                await client.delete_message(
                    QueueUrl=self._url, ReceiptHandle=message.receipt_handle
                )
        except (ClientError, BotoCoreError) as e:
            raise QueueError(
                f"deleting message {message.message_id} from {self._name} "
                f"({_error_code(e)}): {e}"
            ) from e
