from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel

from tldev.config import settings

logger = logging.getLogger(__name__)

UNSPLASH_API_BASE = "https://api.unsplash.com"

CATEGORY_SEARCH_MAP: dict[str, str] = {
    "JavaScript": "javascript code programming",
    "Python": "python programming code",
    "React": "react programming interface",
    "TypeScript": "typescript code developer",
    "DevOps": "devops server infrastructure",
    "Cloud": "cloud computing server",
    "Docker": "container technology server",
    "Kubernetes": "kubernetes cloud infrastructure",
    "Git": "git version control code",
    "Database": "database server technology",
    "Web": "web development code",
    "AI": "artificial intelligence technology",
    "Security": "cybersecurity technology",
    "Testing": "software testing code",
    "Node.js": "nodejs server programming",
    "AWS": "aws cloud computing",
    "Go": "golang programming code",
    "Rust": "rust programming code",
    "CSS": "css web design",
    "Mobile": "mobile app development",
}


class TipImage(BaseModel):
    url: str
    thumb_url: str
    width: int
    height: int
    unsplash_id: str
    author: str
    author_url: str
    download_url: str


def search_query_for(category: str) -> str:
    return CATEGORY_SEARCH_MAP.get(category, f"{category} programming technology")


class UnsplashClient:
    def __init__(self, access_key: str | None = None, timeout: float = 10.0):
        self.access_key = access_key if access_key is not None else settings.unsplash_access_key
        self.timeout = timeout

    async def fetch_image(self, category: str) -> TipImage | None:
        if not self.access_key:
            logger.warning("Unsplash not configured, skipping image for %s", category)
            return None

        headers = {"Authorization": f"Client-ID {self.access_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    f"{UNSPLASH_API_BASE}/photos/random",
                    params={
                        "query": search_query_for(category),
                        "orientation": "portrait",
                        "content_filter": "high",
                    },
                    headers=headers,
                )
                response.raise_for_status()
                data = response.json()
                image = TipImage(
                    url=data["urls"]["regular"],
                    thumb_url=data["urls"]["thumb"],
                    width=data["width"],
                    height=data["height"],
                    unsplash_id=data["id"],
                    author=data["user"]["name"],
                    author_url=data["user"]["links"]["html"],
                    download_url=data["links"]["download_location"],
                )
                await self._track_download(client, image.download_url, headers)
                return image
        except Exception:
            logger.exception("Failed to fetch Unsplash image for %s", category)
            return None

    async def _track_download(self, client: httpx.AsyncClient, url: str, headers: dict) -> None:
        # Unsplash API guidelines ask for a ping on use; the image is usable regardless.
        try:
            await client.get(url, headers=headers)
        except Exception as exc:
            logger.debug("Unsplash download ping failed: %s", exc)
