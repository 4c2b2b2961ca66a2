import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from analyzer import analyze_local
from config import settings
from models import AnalysisResult, DaySummaryRecord, EventRecord, Feedback

logger = logging.getLogger(__name__)


def _dump(items: Sequence[Any]) -> List[Dict[str, Any]]:
    return [i.model_dump(mode="json", by_alias=True) for i in items]


class LifelogClient:
    """Async client for a remote lifelog API (e.g. a phone talking to the server)."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT
        self.transport = transport

    async def post_to_api(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST JSON and return the decoded body; raises httpx errors."""
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self.transport
        ) as client:
            response = await client.post(f"/{endpoint}", json=payload)
            response.raise_for_status()
            return response.json()

    async def analyze_patterns(self, records: Sequence[EventRecord]) -> AnalysisResult:
        """
        Server-side Gemini analysis; the local analyzer answers when the request
        fails (network error, non-2xx status) or the reply is not an analysis.
        """
        try:
            data = await self.post_to_api("api/analyze", {"logs": _dump(records)})
            return AnalysisResult.model_validate(data)
        except (httpx.HTTPError, ValueError) as e:
            # ValueError covers JSONDecodeError and pydantic ValidationError
            logger.error(f"Remote analysis failed, falling back to local analysis: {str(e)}")
            return analyze_local(records)

    async def sync_crm(
        self,
        user_id: str,
        records: Sequence[EventRecord],
        feedbacks: Sequence[Feedback],
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> List[DaySummaryRecord]:
        payload: Dict[str, Any] = {
            "userId": user_id,
            "logs": _dump(records),
            "feedbacks": _dump(feedbacks),
        }
        if date_from and date_to:
            payload["dateRange"] = {"from": date_from, "to": date_to}

        data = await self.post_to_api("api/crm/sync", payload)
        return [DaySummaryRecord.model_validate(r) for r in data.get("records", [])]
