from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict

from config.settings import get_settings
from relay.clients import CompletionClient
from relay.core.models import Message
from relay.core.transcript import Transcript
from relay.errors import ValidationError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelayReply:
    reply: str
    elapsed: float  # seconds spent waiting on the completion API

    def formatted_time(self) -> str:
        return f"{self.elapsed:.2f}s"


class RelayService:
    """Relays user turns to the completion API and records the exchange.

    The user and assistant messages are added to the transcript together and
    only after the upstream call succeeds, so a failed call leaves the
    transcript untouched.
    """

    def __init__(self, client: CompletionClient, transcript: Transcript) -> None:
        self.client = client
        self.transcript = transcript

    def submit(self, message: str) -> RelayReply:
        if not (message or "").strip():
            raise ValidationError("Message must not be empty")

        user_message = Message(role="user", content=message)
        snapshot = self.transcript.snapshot()
        logger.info(
            "User prompt: %s chars, history=%s messages", len(message), len(snapshot.messages)
        )

        start = time.perf_counter()
        reply = self.client.complete([*snapshot.messages, user_message])
        elapsed = time.perf_counter() - start

        recorded = self.transcript.append(
            user_message,
            Message(role="assistant", content=reply),
            generation=snapshot.generation,
        )
        if not recorded:
            logger.info("Transcript was reset during the call; exchange not recorded")

        logger.info("AI response: %s chars in %.2fs", len(reply), elapsed)
        return RelayReply(reply=reply, elapsed=elapsed)

    def reset(self) -> Dict[str, str]:
        self.transcript.reset()
        logger.info("Transcript reset")
        return {"status": "reset"}

    def health_check(self) -> Dict[str, str]:
        return {"status": "ok"}


def build_relay_service() -> RelayService:
    settings = get_settings()
    client = CompletionClient(api_key=settings.require_api_key())
    return RelayService(client=client, transcript=Transcript())


@lru_cache(maxsize=1)
def get_relay_service() -> RelayService:
    """Process-wide service; the transcript it owns is shared by all callers."""
    return build_relay_service()
