"""Shared fixtures: an in-memory stand-in for the async Supabase client."""

import asyncio
import copy
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

from app.repositories.candidate_repository import CandidateRepository
from app.repositories.event_repository import EventRepository
from app.repositories.invitation_repository import InvitationRepository
from app.repositories.response_repository import ResponseRepository
from app.repositories.stage_repository import StageRepository
from app.services.notification_service import NotificationService
from app.services.pipeline_service import PipelineService
from app.services.scoring_service import ScoringService
from app.services.stage_catalog import StageCatalog


BASE_TIME = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fake Supabase client
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, data: List[Dict[str, Any]]):
        self.data = data


class InjectedFailure(Exception):
    """Error raised by the fake database when a failure is injected."""


class FakeQuery:
    """Chainable query mimicking the PostgREST builder."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.operation = "select"
        self.payload: Optional[Dict[str, Any]] = None
        self.filters: List[tuple] = []
        self.orders: List[tuple] = []
        self.row_limit: Optional[int] = None

    def select(self, *columns):
        return self

    def insert(self, data: Dict[str, Any]):
        self.operation = "insert"
        self.payload = data
        return self

    def update(self, data: Dict[str, Any]):
        self.operation = "update"
        self.payload = data
        return self

    def delete(self):
        self.operation = "delete"
        return self

    def eq(self, column: str, value: Any):
        self.filters.append(("eq", column, value))
        return self

    def in_(self, column: str, values: List[Any]):
        self.filters.append(("in", column, list(values)))
        return self

    def order(self, column: str, desc: bool = False):
        self.orders.append((column, desc))
        return self

    def limit(self, count: int):
        self.row_limit = count
        return self

    def matches(self, row: Dict[str, Any]) -> bool:
        for kind, column, value in self.filters:
            if kind == "eq" and row.get(column) != value:
                return False
            if kind == "in" and row.get(column) not in value:
                return False
        return True

    async def execute(self) -> FakeResponse:
        await asyncio.sleep(0)
        self.db.queries.append((self.table, self.operation, list(self.filters)))
        self.db.raise_if_failing(self)

        rows = self.db.tables.setdefault(self.table, [])

        if self.operation == "insert":
            row = {"id": str(uuid.uuid4()), "created_at": self.db.next_timestamp(), **self.payload}
            rows.append(row)
            return FakeResponse([copy.deepcopy(row)])

        matched = [row for row in rows if self.matches(row)]

        if self.operation == "update":
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return FakeResponse(copy.deepcopy(matched))

        if self.operation == "delete":
            self.db.tables[self.table] = [row for row in rows if not self.matches(row)]
            return FakeResponse(copy.deepcopy(matched))

        for column, desc in reversed(self.orders):
            present = [row for row in matched if row.get(column) is not None]
            missing = [row for row in matched if row.get(column) is None]
            present.sort(key=lambda row: row[column], reverse=desc)
            matched = present + missing
        if self.row_limit is not None:
            matched = matched[:self.row_limit]
        return FakeResponse(copy.deepcopy(matched))


class FakeFunctions:
    """Records Edge Function invocations and returns scripted responses."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.responses: Dict[str, Any] = {}

    def script(self, name: str, *responses: Any) -> None:
        """Queue responses for a function; an Exception instance is raised."""
        self.responses[name] = list(responses)

    def calls_to(self, name: str) -> List[Dict[str, Any]]:
        return [body for called, body in self.calls if called == name]

    async def invoke(self, function_name: str, invoke_options: Optional[Dict[str, Any]] = None):
        body = (invoke_options or {}).get("body")
        self.calls.append((function_name, body))

        scripted = self.responses.get(function_name)
        if not scripted:
            return {"success": True}
        response = scripted.pop(0) if len(scripted) > 1 else scripted[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(body)
        return copy.deepcopy(response)


class FakeChannel:
    """Realtime channel whose notifications are pushed by the test."""

    def __init__(self, topic: str):
        self.topic = topic
        self.bindings: List[Dict[str, Any]] = []
        self.state_callback: Optional[Callable] = None
        self.subscribed = False
        self.removed = False

    def on_postgres_changes(self, event, callback, table="*", schema="public", filter=None):
        self.bindings.append({
            "event": event, "callback": callback, "table": table, "schema": schema, "filter": filter
        })
        return self

    async def subscribe(self, callback=None):
        self.state_callback = callback
        self.subscribed = True
        if callback:
            callback("SUBSCRIBED", None)
        return self

    def emit(self, change_type: str, record: Optional[Dict[str, Any]] = None, old_record: Optional[Dict[str, Any]] = None):
        payload = {"data": {"type": change_type, "record": record, "old_record": old_record}, "ids": []}
        for binding in self.bindings:
            binding["callback"](payload)

    def set_state(self, state: str, error: Optional[Exception] = None):
        if self.state_callback:
            self.state_callback(state, error)


class FakeSupabase:
    """In-memory async client covering the calls the repositories make."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.queries: List[tuple] = []
        self.failures: List[Dict[str, Any]] = []
        self.functions = FakeFunctions()
        self.channels: List[FakeChannel] = []
        self._clock = 0

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def next_timestamp(self) -> str:
        self._clock += 1
        return (BASE_TIME + timedelta(seconds=self._clock)).isoformat()

    def seed(self, table: str, *rows: Dict[str, Any]) -> None:
        for row in rows:
            self.tables.setdefault(table, []).append(
                {"id": str(uuid.uuid4()), "created_at": self.next_timestamp(), **row}
            )

    def rows(self, table: str, **filters: Any) -> List[Dict[str, Any]]:
        return [
            copy.deepcopy(row) for row in self.tables.get(table, [])
            if all(row.get(column) == value for column, value in filters.items())
        ]

    def fail(self, table: str, operation: str, times: Optional[int] = None, **match: Any) -> None:
        """Make matching queries raise; match restricts on eq/in filter values."""
        self.failures.append({"table": table, "operation": operation, "times": times, "match": match})

    def raise_if_failing(self, query: FakeQuery) -> None:
        for failure in self.failures:
            if failure["table"] != query.table or failure["operation"] != query.operation:
                continue
            if failure["times"] == 0:
                continue
            if not self._filters_match(failure["match"], query.filters):
                continue
            if failure["times"] is not None:
                failure["times"] -= 1
            raise InjectedFailure(f"injected {query.operation} failure on {query.table}")

    @staticmethod
    def _filters_match(match: Dict[str, Any], filters: List[tuple]) -> bool:
        for column, expected in match.items():
            found = False
            for kind, filter_column, value in filters:
                if filter_column != column:
                    continue
                if (kind == "eq" and value == expected) or (kind == "in" and expected in value):
                    found = True
            if not found:
                return False
        return True

    def channel(self, topic: str, params: Optional[Dict[str, Any]] = None) -> FakeChannel:
        channel = FakeChannel(topic)
        self.channels.append(channel)
        return channel

    async def remove_channel(self, channel: FakeChannel) -> None:
        channel.removed = True
        if channel in self.channels:
            self.channels.remove(channel)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

SCREENING_ID = "stage-screening"
TECHNICAL_ID = "stage-technical"
HR_ID = "stage-hr"
JOB_ID = "job-1"


@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def stages(fake_db):
    """Shared pipeline: Screening(1), Technical(2), HR(3)."""
    fake_db.seed(
        "interview_stages",
        {"id": SCREENING_ID, "name": "Screening", "stage_order": 1, "is_ai_automated": False, "job_id": None},
        {"id": TECHNICAL_ID, "name": "Technical", "stage_order": 2, "is_ai_automated": False, "job_id": None},
        {"id": HR_ID, "name": "HR", "stage_order": 3, "is_ai_automated": False, "job_id": None},
    )
    return fake_db.rows("interview_stages")


def seed_candidate(fake_db: FakeSupabase, candidate_id: str, **overrides: Any) -> Dict[str, Any]:
    row = {
        "id": candidate_id,
        "candidate_id": f"profile-{candidate_id}",
        "job_id": JOB_ID,
        "current_stage_id": None,
        "status": "active",
        "ai_score": 80,
        "ai_analysis": {"candidate_data": {"full_name": "Ada Lovelace", "email": "ada@example.com"}},
        "applied_at": fake_db.next_timestamp(),
    }
    row.update(overrides)
    fake_db.seed("interview_candidates", row)
    return row


@pytest.fixture
def candidate(fake_db, stages):
    return seed_candidate(fake_db, "cand-1")


def make_pipeline_service(fake_db: FakeSupabase) -> PipelineService:
    return PipelineService(
        StageCatalog(StageRepository(fake_db)),
        CandidateRepository(fake_db),
        EventRepository(fake_db),
        InvitationRepository(fake_db),
        ResponseRepository(fake_db),
        notification_service=NotificationService(fake_db),
        scoring_service=ScoringService(fake_db)
    )


@pytest.fixture
def pipeline_service(fake_db) -> PipelineService:
    return make_pipeline_service(fake_db)
