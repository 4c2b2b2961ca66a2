import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from agents import FeedbackAgent, default_feedback, failed_food_analysis
from analyzer import analyze_local
from config import local_now, local_today
from crm import build_day_summaries, filter_date_range
from models import (
    AnalysisResult,
    DailyFeedbackKind,
    DaySummaryRecord,
    EventRecord,
    Feedback,
    FeedbackDraft,
    FoodAnalysisResult,
    LogKind,
    factors_from_analysis,
    utc_now,
)
from store import LifelogStore, generate_id

logger = logging.getLogger(__name__)


class LifelogService:
    """
    Operations the client UI calls. Owns the store and the (optional) agent.

    ``agent`` is None when no Gemini key is configured; calls that need the
    model then degrade to their local or default results.
    """

    def __init__(
        self,
        store: LifelogStore,
        agent: Optional[FeedbackAgent] = None,
        evening_hour: int = 18,
    ):
        self.store = store
        self.agent = agent
        self.evening_hour = evening_hour
        self._inflight: Dict[Tuple[str, str], asyncio.Task] = {}
        self._scheduled: Set[asyncio.Task] = set()

    # ---- logs ----
    def submit_log(
        self,
        user_id: str,
        date: str,
        kind: LogKind,
        value: float,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> EventRecord:
        if not user_id:
            raise ValueError("A user ID is required.")
        return self.store.add_record(
            date=date, kind=kind, value=value, metadata=metadata, user_id=user_id
        )

    # ---- daily feedback ----
    def feedback_kind_for(self, now: Optional[datetime] = None) -> DailyFeedbackKind:
        hour = (now or local_now()).hour
        return "morning" if hour < self.evening_hour else "evening"

    async def _generate_feedback(self, date: str, kind: DailyFeedbackKind) -> Feedback:
        user_id = self.store.user_id
        if self.agent is None:
            draft = default_feedback(user_id, date, kind)
        else:
            draft = await self.agent.request_feedback(
                list(self.store.records), kind, user_id, date
            )
        # Backend writes are blocking file or Redis I/O
        return await asyncio.to_thread(self.store.add_feedback, draft)

    async def request_daily_feedback(
        self, date: str, kind: Optional[DailyFeedbackKind] = None
    ) -> Feedback:
        """
        Feedback for ``date``/``kind``, generated at most once.

        An existing feedback is returned as is; a request already in flight
        is awaited instead of starting a second one.
        A date without records gets the default feedback, unsaved, so a
        later request can still reach the model.
        """
        kind = kind or self.feedback_kind_for()
        if not self.store.records_by_date(date):
            draft = default_feedback(self.store.user_id, date, kind)
            return Feedback(**draft.model_dump(), id=generate_id(), created_at=utc_now())

        existing = self.store.find_feedback(date, kind)
        if existing:
            return existing

        key = (date, kind)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._generate_feedback(date, kind))
            self._inflight[key] = task
            task.add_done_callback(lambda _: self._inflight.pop(key, None))
        return await asyncio.shield(task)

    def schedule_daily_feedback(
        self, date: str, delay: float = 1.0, kind: Optional[DailyFeedbackKind] = None
    ) -> asyncio.Task:
        async def run() -> Optional[Feedback]:
            await asyncio.sleep(delay)
            if not self.store.records_by_date(date):
                return None
            return await self.request_daily_feedback(date, kind)

        task = asyncio.get_running_loop().create_task(run())
        self._scheduled.add(task)
        task.add_done_callback(self._scheduled.discard)
        return task

    def cancel_scheduled(self) -> None:
        for task in list(self._scheduled):
            task.cancel()

    # ---- pattern analysis ----
    async def request_pattern_analysis(
        self,
        records: Optional[Sequence[EventRecord]] = None,
        record_warning: bool = False,
    ) -> AnalysisResult:
        records = list(self.store.records) if records is None else list(records)

        if self.agent is None:
            logger.info("Remote analysis unavailable, using local analyzer")
            result = analyze_local(records)
        else:
            result = await self.agent.request_warning_analysis(records)

        if record_warning:
            await asyncio.to_thread(self._record_warning, result)
        return result

    def _record_warning(self, result: AnalysisResult) -> Optional[Feedback]:
        negatives = [f for f in result.factors if f.impact == "negative"]
        if not negatives:
            return None
        return self.store.add_feedback(
            FeedbackDraft(
                user_id=self.store.user_id,
                date=self.store.selected_date,
                kind="warning",
                content=" ".join(result.patterns),
                factors=factors_from_analysis(result.factors),
                prescriptions=result.recommendations,
            )
        )

    # ---- food ----
    async def analyze_food(
        self, image: bytes, mime_type: str = "image/jpeg"
    ) -> FoodAnalysisResult:
        if self.agent is None:
            return failed_food_analysis("Food analysis is not available right now.")
        return await self.agent.analyze_food(image, mime_type)

    # ---- exports ----
    def export_crm(
        self,
        user_id: str,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> List[DaySummaryRecord]:
        if not user_id:
            raise ValueError("A user ID is required.")

        records, feedbacks = self.store.records, self.store.feedbacks
        if date_from and date_to:
            records, feedbacks = filter_date_range(records, feedbacks, date_from, date_to)
        return build_day_summaries(user_id, records, feedbacks)

    def export_raw_data(self) -> Dict[str, Any]:
        return {**self.store.snapshot(), "exportedAt": utc_now().isoformat()}

    def today(self) -> str:
        return local_today().isoformat()
