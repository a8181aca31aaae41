from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

import httpx

from tldev.config import settings

logger = logging.getLogger(__name__)

_EXPO_TOKEN_RE = re.compile(r"^(ExponentPushToken|ExpoPushToken)\[[^\[\]]+\]$")

# Expo rejects requests carrying more than 100 messages.
EXPO_MAX_CHUNK = 100


@dataclass
class PushMessage:
    to: str
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)
    image_url: str | None = None
    sound: str | None = "default"
    priority: str = "high"

    def to_payload(self) -> dict:
        data = dict(self.data)
        payload: dict[str, Any] = {
            "to": self.to,
            "title": self.title,
            "body": self.body,
            "sound": self.sound,
            "priority": self.priority,
        }
        if self.image_url:
            data["imageUrl"] = self.image_url
            payload["richContent"] = {"image": self.image_url}
        payload["data"] = data
        return payload


@dataclass
class PushTicket:
    status: str
    id: str | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


class ExpoPushSender:
    def __init__(
        self,
        access_token: str | None = None,
        url: str | None = None,
        chunk_size: int | None = None,
        timeout: float = 30.0,
    ):
        self.access_token = access_token if access_token is not None else settings.expo_access_token
        self.url = url or settings.expo_push_url
        self.chunk_size = min(chunk_size or settings.push_chunk_size, EXPO_MAX_CHUNK)
        self.timeout = timeout

    @staticmethod
    def is_valid_token(token: str | None) -> bool:
        return bool(token) and _EXPO_TOKEN_RE.match(token) is not None

    def chunk(self, items: list) -> list[list]:
        return [items[i : i + self.chunk_size] for i in range(0, len(items), self.chunk_size)]

    async def send_chunk(self, messages: list[PushMessage]) -> list[PushTicket]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                self.url,
                json=[m.to_payload() for m in messages],
                headers=headers,
            )
            response.raise_for_status()
            body = response.json()

        tickets = []
        for raw in body.get("data", []):
            tickets.append(
                PushTicket(
                    status=raw.get("status", "error"),
                    id=raw.get("id"),
                    message=raw.get("message"),
                )
            )
        logger.info("Sent push chunk of %d messages", len(messages))
        return tickets
