"""Shared helpers for worker job handlers."""

from __future__ import annotations

from urllib.parse import urlsplit

import httpx

from fieldservice.core.config import settings


def safe_url(url: str | None) -> str:
    if not url:
        return ""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}{parts.path}"


async def post_json(url: str, payload: dict, headers: dict[str, str] | None = None) -> int:
    """POST a JSON body; non-2xx raises so the job is retried."""
    async with httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT_SECONDS) as client:
        response = await client.post(url, json=payload, headers=headers or {})
        response.raise_for_status()
        return response.status_code
