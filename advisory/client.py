"""HTTP client for the crowd advisory service.

The advisory service turns a crowd snapshot into a few short, actionable
recommendations. Requests are JSON posts carrying the headcount, density,
risk level, congestion points and a ready-made prompt; the response is
expected to look like ``{"recommendations": ["...", "..."]}``.

`AdvisoryClient.fetch_recommendations` never raises. Any transport error,
HTTP error or malformed body maps to `FALLBACK_RECOMMENDATION`.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from analytics.crowd_density import CrowdSnapshot

logger = logging.getLogger(__name__)

FALLBACK_RECOMMENDATION = "AI service unavailable. Please monitor the situation manually."
EMPTY_RECOMMENDATION = "No new recommendations from AI."


def build_prompt(snapshot: CrowdSnapshot) -> str:
    """Render the instruction sent alongside the structured fields."""
    if snapshot.congestion_points:
        hotspots = json.dumps(
            [{"x": f"{p.x:.2f}", "y": f"{p.y:.2f}"} for p in snapshot.congestion_points]
        )
    else:
        hotspots = "None"
    return (
        "Analyze the following crowd data and provide 3 brief, actionable "
        "recommendations for crowd management.\n"
        "Data:\n"
        f"- Total people: {snapshot.total_count}\n"
        f"- Density: {snapshot.density:.2f} people per square meter\n"
        f"- Risk Level: {snapshot.risk_level.value}\n"
        f"- Congestion Hotspots (normalized coordinates): {hotspots}\n"
        "Focus on immediate safety and flow improvement. Be direct and clear."
    )


def build_payload(snapshot: CrowdSnapshot) -> Dict[str, Any]:
    return {
        "totalCount": snapshot.total_count,
        "density": snapshot.density,
        "riskLevel": snapshot.risk_level.value,
        "congestionPoints": [p.to_dict() for p in snapshot.congestion_points],
        "prompt": build_prompt(snapshot),
    }


def parse_recommendations(body: Any) -> List[str]:
    """Extract the recommendation list from a decoded response body.

    Raises
    ------
    ValueError
        If the body does not carry a list of strings.
    """
    if body is None or body == "":
        return [EMPTY_RECOMMENDATION]
    if not isinstance(body, dict):
        raise ValueError(f"Unexpected advisory response type: {type(body).__name__}")
    recommendations = body.get("recommendations")
    if recommendations is None:
        return []
    if not isinstance(recommendations, list) or not all(isinstance(r, str) for r in recommendations):
        raise ValueError("Advisory response 'recommendations' must be a list of strings")
    return [r.strip() for r in recommendations if r.strip()]


class AdvisoryClient:
    """Async client for the recommendation endpoint.

    Parameters
    ----------
    url : str
        Endpoint receiving the JSON post.
    timeout : float
        Request timeout in seconds.
    client : httpx.AsyncClient, optional
        Pre-built client, mainly for tests (e.g. with a mock transport).
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._client = client
        self.request_count = 0

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def fetch_recommendations(self, snapshot: CrowdSnapshot) -> List[str]:
        self.request_count += 1
        try:
            client = await self._get_client()
            response = await client.post(self.url, json=build_payload(snapshot))
            response.raise_for_status()
            body = response.json() if response.content.strip() else None
            return parse_recommendations(body)
        except httpx.HTTPError as exc:
            logger.error("Advisory request to %s failed: %s", self.url, exc)
        except ValueError as exc:
            logger.error("Malformed advisory response: %s", exc)
        return [FALLBACK_RECOMMENDATION]
