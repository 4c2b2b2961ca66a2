# store.py
"""
Lifelog state store.

One container per user session holding records, feedback and the profile,
plus UI selection state. Data mutations persist the whole data document
through a pluggable backend (JSON file, Redis or memory); UI selection is
never persisted.

Persisted layout:
    {"version": "<STORE_VERSION>", "state": {"records": [...], "feedbacks": [...], "profile": {...}}}

A missing document or a version mismatch wipes the state and reseeds it
with an empty log and a default profile (no migration).
"""

import json
import logging
import threading
import uuid
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

import redis

from config import Settings, local_today
from models import (
    DailyFeedbackKind,
    EventRecord,
    Feedback,
    FeedbackDraft,
    FeedbackKind,
    LogKind,
    UserProfile,
    ViewId,
    utc_now,
)

logger = logging.getLogger(__name__)


# ==================================================
# BACKENDS
# ==================================================
class MemoryBackend:
    def __init__(self, document: Optional[Dict[str, Any]] = None):
        self.document = document

    def load(self) -> Optional[Dict[str, Any]]:
        return self.document

    def save(self, document: Dict[str, Any]) -> None:
        self.document = document


class JsonFileBackend:
    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read {self.path}: {str(e)}")
            return None

    def save(self, document: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(document, f, ensure_ascii=False, indent=2)


class RedisBackend:
    def __init__(self, client: redis.Redis, key: str):
        self.client = client
        self.key = key

    def load(self) -> Optional[Dict[str, Any]]:
        raw = self.client.get(self.key)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt state at {self.key}: {str(e)}")
            return None

    def save(self, document: Dict[str, Any]) -> None:
        self.client.set(self.key, json.dumps(document, ensure_ascii=False))


def create_backend(settings: Settings):
    """Redis when REDIS_URL is set and reachable, else the JSON file."""
    if settings.REDIS_URL:
        try:
            client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
            client.ping()
            logger.info("Redis store connected")
            return RedisBackend(client, f"{settings.REDIS_KEY_PREFIX}:{settings.USER_ID}")
        except redis.RedisError as e:
            logger.error(f"Redis connection failed, using file store: {str(e)}")
    return JsonFileBackend(Path(settings.STORE_PATH))


def generate_id() -> str:
    return str(uuid.uuid4())


# ==================================================
# STORE
# ==================================================
class LifelogStore:
    def __init__(
        self,
        backend,
        version: str = "1",
        user_id: str = "user-1",
        user_name: str = "User",
    ):
        self.backend = backend
        self.version = version
        self.user_id = user_id
        self.user_name = user_name
        self._lock = threading.RLock()

        self.records: List[EventRecord] = []
        self.feedbacks: List[Feedback] = []
        self.profile: Optional[UserProfile] = None

        # UI state (not persisted)
        self.active_view: ViewId = "home"
        self.selected_date: str = local_today().isoformat()

        self._rehydrate()

    # ---- persistence ----
    def _default_profile(self) -> UserProfile:
        return UserProfile(id=self.user_id, name=self.user_name)

    def _rehydrate(self) -> None:
        document = self.backend.load()

        if not document or document.get("version") != self.version:
            logger.warning(
                f"Stored state missing or version mismatch "
                f"(expected {self.version}); reseeding"
            )
            self.profile = self._default_profile()
            self._persist()
            return

        state = document.get("state", {})
        self.records = [EventRecord.model_validate(r) for r in state.get("records", [])]
        self.feedbacks = [Feedback.model_validate(f) for f in state.get("feedbacks", [])]
        profile = state.get("profile")
        self.profile = UserProfile.model_validate(profile) if profile else None

    def snapshot(self) -> Dict[str, Any]:
        """Data portion of the state as JSON-ready camelCase dicts."""
        return {
            "records": [r.model_dump(mode="json", by_alias=True) for r in self.records],
            "feedbacks": [f.model_dump(mode="json", by_alias=True) for f in self.feedbacks],
            "profile": (
                self.profile.model_dump(mode="json", by_alias=True)
                if self.profile
                else None
            ),
        }

    def _persist(self) -> None:
        self.backend.save({"version": self.version, "state": self.snapshot()})

    # ---- records ----
    def add_record(
        self,
        date: str,
        kind: LogKind,
        value: float,
        metadata: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> EventRecord:
        record = EventRecord(
            id=generate_id(),
            user_id=user_id or self.user_id,
            timestamp=utc_now(),
            date=date,
            kind=kind,
            value=value,
            metadata=metadata or {},
        )
        with self._lock:
            self.records.append(record)
            self._persist()
        return record

    def update_record(self, record_id: str, **updates: Any) -> EventRecord:
        with self._lock:
            for idx, record in enumerate(self.records):
                if record.id == record_id:
                    merged = {**record.model_dump(), **updates, "id": record.id}
                    updated = EventRecord.model_validate(merged)
                    self.records[idx] = updated
                    self._persist()
                    return updated
        raise KeyError(record_id)

    def delete_record(self, record_id: str) -> None:
        with self._lock:
            remaining = [r for r in self.records if r.id != record_id]
            if len(remaining) == len(self.records):
                raise KeyError(record_id)
            self.records = remaining
            self._persist()

    def records_by_date(self, day: str) -> List[EventRecord]:
        return [r for r in self.records if r.date == day]

    def records_by_kind(self, kind: LogKind) -> List[EventRecord]:
        return [r for r in self.records if r.kind == kind]

    # ---- feedback ----
    def add_feedback(self, draft: FeedbackDraft) -> Feedback:
        feedback = Feedback(
            **draft.model_dump(), id=generate_id(), created_at=utc_now()
        )
        with self._lock:
            self.feedbacks.append(feedback)
            self._persist()
        return feedback

    def feedbacks_by_date(self, day: str) -> List[Feedback]:
        return [f for f in self.feedbacks if f.date == day]

    def find_feedback(self, day: str, kind: DailyFeedbackKind) -> Optional[Feedback]:
        return next(
            (f for f in self.feedbacks if f.date == day and f.kind == kind), None
        )

    def latest_feedback(self, kind: FeedbackKind) -> Optional[Feedback]:
        matching = [f for f in self.feedbacks if f.kind == kind]
        if not matching:
            return None
        return max(matching, key=lambda f: f.created_at)

    # ---- profile ----
    def set_profile(self, profile: UserProfile) -> UserProfile:
        with self._lock:
            self.profile = profile
            self._persist()
        return profile

    def update_profile(self, **updates: Any) -> Optional[UserProfile]:
        with self._lock:
            if self.profile is None:
                return None
            self.profile = UserProfile.model_validate(
                {**self.profile.model_dump(), **updates}
            )
            self._persist()
            return self.profile

    # ---- utility ----
    def clear(self) -> None:
        with self._lock:
            self.records = []
            self.feedbacks = []
            self.profile = None
            self.selected_date = local_today().isoformat()
            self._persist()

    # ---- UI selection ----
    def set_active_view(self, view: ViewId) -> None:
        self.active_view = view

    def set_selected_date(self, day: str) -> None:
        date.fromisoformat(day)
        self.selected_date = day


def create_store(settings: Settings) -> LifelogStore:
    return LifelogStore(
        create_backend(settings),
        version=settings.STORE_VERSION,
        user_id=settings.USER_ID,
        user_name=settings.USER_NAME,
    )
