"""
SessionStore tests

The evaluation engine is replaced by FakeEngine, which can be held at an asyncio.Event
to keep an evaluation in flight, and the clock is a settable fake.
"""

import asyncio
import json
import uuid
from unittest.mock import AsyncMock

import pytest

from instruct_lab_core import events
from instruct_lab_core.domain.entities import TestRun, TestStatus
from instruct_lab_core.domain.errors import (
    ConcurrencyRejection,
    CredentialError,
    JudgeParseError,
    NetworkError,
    SessionExpiredError,
    StorageError,
    ValidationError,
)
from instruct_lab_core.domain.value_objects import (
    CostBreakdown,
    Model,
    ModelPricing,
    SuccessMetrics,
    TokenUsage,
)
from instruct_lab_core.events import EventBus
from instruct_lab_core.lab_config import LabConfig, SessionConfig
from instruct_lab_core.session.storage import InMemorySessionStorage
from instruct_lab_core.session.store import SessionStore
from instruct_lab_core.workflow import Step

API_KEY = "sk-or-v1-0123456789abcdef0123456789abcdef"
INSTRUCTIONS = "You are a concise networking tutor."
PROMPT = "Explain TCP in two sentences."

MODEL = Model(
    id="openai/gpt-4o-mini",
    name="GPT-4o mini",
    provider="Openai",
    context_length=128000,
    pricing=ModelPricing(prompt_per_token=0.000001, completion_per_token=0.000002),
)
JUDGE = Model(id="openai/gpt-4", name="GPT-4", provider="Openai", context_length=8192)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeEngine:
    """Stands in for EvaluationEngine.run()"""

    def __init__(self):
        self.calls = []
        self.gate: asyncio.Event | None = None
        self.error: Exception | None = None
        self.parse_failed = False

    async def run(self, params):
        self.calls.append(params)
        await asyncio.sleep(0)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.parse_failed:
            metrics = SuccessMetrics.degraded("Evaluation parsing failed: No JSON object found in judge response")
        else:
            metrics = SuccessMetrics(85, 90, 88, 75, explanation="Good")
        return TestRun(
            id=str(uuid.uuid4()),
            timestamp="2026-01-01T12:00:00+00:00",
            model=params.model.name,
            model_id=params.model.id,
            model_provider=params.model.provider,
            evaluation_model=params.evaluation_model.id,
            instructions=params.instructions,
            prompt=params.prompt,
            response="TCP is reliable.",
            metrics=metrics,
            token_usage=TokenUsage(100, 50),
            execution_time_ms=900,
            cost=0.001,
            cost_breakdown=CostBreakdown(primary=0.0004, evaluation=0.0006),
        )


class RecordingBus(EventBus):
    def __init__(self):
        super().__init__()
        self.published: list[tuple[str, object]] = []

    def publish(self, event, payload=None):
        self.published.append((event, payload))
        super().publish(event, payload)

    def names(self) -> list[str]:
        return [name for name, _ in self.published]


def _store(ttl=100, storage=None, verifier=None):
    engine = FakeEngine()
    clock = FakeClock()
    bus = RecordingBus()
    store = SessionStore(
        engine,
        config=LabConfig(session=SessionConfig(ttl_seconds=ttl)),
        key_verifier=verifier or AsyncMock(return_value=True),
        storage=storage if storage is not None else InMemorySessionStorage(),
        event_bus=bus,
        clock=clock,
    )
    return store, engine, clock, bus


async def _ready(store: SessionStore) -> None:
    """Walk a store to the TEST step with every input set"""
    await store.set_credential(API_KEY)
    store.select(MODEL)
    store.configure_evaluation(JUDGE)
    assert store.request_step(Step.INSTRUCTIONS).accepted
    store.set_instructions(INSTRUCTIONS)
    assert store.request_step(Step.TEST).accepted
    store.set_prompt(PROMPT)


class TestLifecycle:
    def test_initialize_is_idempotent(self):
        store, _, _, bus = _store()
        first = store.initialize()
        assert store.initialize() == first
        assert bus.names().count(events.SESSION_STARTED) == 1

    def test_created_lazily_on_first_action(self):
        store, _, _, _ = _store()
        assert not store.is_active
        store.select(MODEL)
        assert store.is_active

    def test_ttl_from_creation_is_not_renewed(self):
        store, _, clock, _ = _store(ttl=100)
        first = store.initialize()
        clock.now += 50
        store.set_prompt(PROMPT)
        clock.now += 50
        assert store.is_expired()
        store.set_prompt(PROMPT)
        assert store.session_id != first

    async def test_expiry_tears_down(self):
        store, _, clock, bus = _store(ttl=100)
        await _ready(store)
        await store.run_evaluation()
        clock.now += 100

        assert store.check_expiry() is True
        assert not store.is_active
        assert store.history == ()
        assert store.vault.encrypted is None
        assert store.current_test.model is None
        assert events.SESSION_EXPIRED in bus.names()

    def test_remaining_seconds(self):
        store, _, clock, _ = _store(ttl=100)
        store.initialize()
        clock.now += 30
        assert store.remaining_seconds() == pytest.approx(70)

    async def test_teardown(self):
        storage = InMemorySessionStorage()
        store, _, _, _ = _store(storage=storage)
        await _ready(store)
        session_id = store.session_id

        store.teardown()

        assert storage.get(session_id) is None
        assert not store.credential_valid
        assert store.step == Step.SETUP
        assert store.session_id is None


class TestCredential:
    async def test_valid_key(self):
        verifier = AsyncMock(return_value=True)
        store, _, _, bus = _store(verifier=verifier)

        await store.set_credential(f" {API_KEY} ")

        verifier.assert_awaited_once_with(API_KEY)
        assert store.credential_valid
        assert store.vault.reveal() == API_KEY
        assert (events.CREDENTIAL_CHANGED, True) in bus.published

    async def test_invalid_format_skips_liveness_check(self):
        verifier = AsyncMock(return_value=True)
        store, _, _, _ = _store(verifier=verifier)

        with pytest.raises(CredentialError, match="format"):
            await store.set_credential("not-a-key")

        verifier.assert_not_called()
        assert not store.credential_valid

    async def test_rejected_key_is_not_kept(self):
        verifier = AsyncMock(side_effect=CredentialError("Invalid API key"))
        store, _, _, _ = _store(verifier=verifier)

        with pytest.raises(CredentialError):
            await store.set_credential(API_KEY)

        assert store.vault.encrypted is None
        assert not store.credential_valid

    async def test_network_failure_during_check(self):
        verifier = AsyncMock(side_effect=NetworkError("down"))
        store, _, _, _ = _store(verifier=verifier)

        with pytest.raises(NetworkError):
            await store.set_credential(API_KEY)

        assert not store.credential_valid

    async def test_new_test_during_check_keeps_credential(self):
        gate = asyncio.Event()

        async def slow_verifier(key):
            await gate.wait()
            return True

        store, _, _, _ = _store(verifier=slow_verifier)
        task = asyncio.create_task(store.set_credential(API_KEY))
        await asyncio.sleep(0)
        store.reset_current_test()
        gate.set()
        await task

        assert store.credential_valid
        assert store.vault.reveal() == API_KEY

    async def test_teardown_during_check_discards_credential(self):
        gate = asyncio.Event()

        async def slow_verifier(key):
            await gate.wait()
            return True

        store, _, _, bus = _store(verifier=slow_verifier)
        task = asyncio.create_task(store.set_credential(API_KEY))
        await asyncio.sleep(0)
        store.teardown()
        gate.set()
        await task

        assert not store.credential_valid
        assert store.vault.encrypted is None
        assert (events.CREDENTIAL_CHANGED, True) not in bus.published

    async def test_clear_credential(self):
        store, _, _, _ = _store()
        await store.set_credential(API_KEY)
        store.clear_credential()
        assert not store.credential_valid
        assert Step.INSTRUCTIONS not in store.accessible_steps()


class TestWorkflow:
    def test_refusal_keeps_step(self):
        store, _, _, _ = _store()
        transition = store.request_step(Step.INSTRUCTIONS)
        assert not transition.accepted
        assert transition.reason == "A valid API key is required"
        assert store.step == Step.SETUP

    async def test_accessible_steps_follow_inputs(self):
        store, _, _, _ = _store()
        assert store.accessible_steps() == [Step.SETUP]
        await store.set_credential(API_KEY)
        store.select(MODEL)
        assert store.accessible_steps() == [Step.SETUP, Step.INSTRUCTIONS]
        store.set_instructions(INSTRUCTIONS)
        assert store.accessible_steps() == [Step.SETUP, Step.INSTRUCTIONS, Step.TEST]

    async def test_backward_navigation_allowed(self):
        store, _, _, _ = _store()
        await _ready(store)
        assert store.request_step(Step.SETUP).accepted
        assert store.step == Step.SETUP


class TestRunEvaluation:
    async def test_success(self):
        store, engine, _, bus = _store()
        await _ready(store)

        run = await store.run_evaluation()

        assert run is not None
        assert store.history == (run,)
        assert store.step == Step.RESULTS
        assert store.current_test.status == TestStatus.COMPLETE
        assert store.current_test.response == "TCP is reliable."
        assert store.current_test.metrics.overall_score == pytest.approx(86.3)
        assert store.current_test.cost == pytest.approx(0.001)
        assert not store.in_flight
        assert engine.calls[0].api_key == API_KEY
        assert engine.calls[0].evaluation_model == JUDGE
        assert events.EVALUATION_COMPLETED in bus.names()
        assert events.JUDGE_PARSE_FAILED not in bus.names()

    async def test_default_judge_model_from_config(self):
        store, engine, _, _ = _store()
        await store.set_credential(API_KEY)
        store.select(MODEL)
        store.set_instructions(INSTRUCTIONS)
        store.set_prompt(PROMPT)

        await store.run_evaluation()

        assert engine.calls[0].evaluation_model.id == LabConfig().evaluation.judge_model

    async def test_rejected_when_test_step_unreachable(self):
        store, engine, _, _ = _store()
        await store.set_credential(API_KEY)
        store.select(MODEL)
        store.set_instructions("too short")

        with pytest.raises(ValidationError, match="Instructions must be at least 10"):
            await store.run_evaluation()

        assert engine.calls == []

    async def test_second_run_rejected_while_in_flight(self):
        store, engine, _, _ = _store()
        await _ready(store)
        engine.gate = asyncio.Event()

        first = asyncio.create_task(store.run_evaluation())
        await asyncio.sleep(0)
        assert store.in_flight
        assert store.current_test.status == TestStatus.TESTING

        with pytest.raises(ConcurrencyRejection):
            await store.run_evaluation()

        engine.gate.set()
        run = await first
        assert len(engine.calls) == 1
        assert store.history == (run,)
        assert not store.in_flight

    async def test_concurrent_calls_start_one_evaluation(self):
        store, engine, _, _ = _store()
        await _ready(store)

        results = await asyncio.gather(
            store.run_evaluation(),
            store.run_evaluation(),
            return_exceptions=True,
        )

        assert len(engine.calls) == 1
        assert sum(isinstance(r, ConcurrencyRejection) for r in results) == 1
        assert len(store.history) == 1

    async def test_failure_sets_error_state(self):
        store, engine, _, bus = _store()
        await _ready(store)
        engine.error = NetworkError("Server error occurred (503). Please try again.", status_code=503)

        with pytest.raises(NetworkError):
            await store.run_evaluation()

        assert store.current_test.status == TestStatus.ERROR
        assert store.current_test.error == "Server error occurred (503). Please try again."
        assert store.history == ()
        assert store.step == Step.TEST
        assert not store.in_flight
        assert events.EVALUATION_FAILED in bus.names()

    async def test_retry_after_failure(self):
        store, engine, _, _ = _store()
        await _ready(store)
        engine.error = NetworkError("down")
        with pytest.raises(NetworkError):
            await store.run_evaluation()

        engine.error = None
        run = await store.run_evaluation()

        assert store.history == (run,)
        assert store.current_test.error is None

    async def test_failed_rerun_from_results_returns_to_test(self):
        store, engine, _, bus = _store()
        await _ready(store)
        await store.run_evaluation()
        assert store.step == Step.RESULTS

        engine.error = NetworkError("down")
        with pytest.raises(NetworkError):
            await store.run_evaluation()

        assert store.current_test.status == TestStatus.ERROR
        assert store.step == Step.TEST
        assert store.step in store.accessible_steps()
        assert bus.published[-2] == (events.STEP_CHANGED, Step.TEST)

    async def test_failure_on_test_step_keeps_step(self):
        store, engine, _, _ = _store()
        await _ready(store)
        engine.error = NetworkError("down")

        with pytest.raises(NetworkError):
            await store.run_evaluation()

        assert store.step == Step.TEST

    async def test_parse_failure_event(self):
        store, engine, _, bus = _store()
        await _ready(store)
        engine.parse_failed = True

        run = await store.run_evaluation()

        assert run.metrics.parse_failed
        payloads = [p for name, p in bus.published if name == events.JUDGE_PARSE_FAILED]
        assert len(payloads) == 1
        assert isinstance(payloads[0], JudgeParseError)
        assert payloads[0].context["test_run_id"] == run.id

    async def test_rerun_appends_independent_record(self):
        store, _, _, _ = _store()
        await _ready(store)
        first = await store.run_evaluation()
        second = await store.run_evaluation()
        assert store.history == (first, second)
        assert first.id != second.id


class TestStaleResults:
    async def test_result_after_reset_is_dropped(self):
        store, engine, _, bus = _store()
        await _ready(store)
        engine.gate = asyncio.Event()

        task = asyncio.create_task(store.run_evaluation())
        await asyncio.sleep(0)
        store.reset_current_test()
        engine.gate.set()

        assert await task is None
        assert store.history == ()
        assert store.current_test.response is None
        assert store.current_test.status == TestStatus.IDLE
        assert store.step == Step.SETUP
        assert events.EVALUATION_COMPLETED not in bus.names()

    async def test_failure_after_reset_is_dropped(self):
        store, engine, _, _ = _store()
        await _ready(store)
        engine.gate = asyncio.Event()
        engine.error = NetworkError("down")

        task = asyncio.create_task(store.run_evaluation())
        await asyncio.sleep(0)
        store.reset_current_test()
        engine.gate.set()

        assert await task is None
        assert store.current_test.status == TestStatus.IDLE
        assert store.current_test.error is None

    async def test_new_run_allowed_after_reset(self):
        store, engine, _, _ = _store()
        await _ready(store)
        engine.gate = asyncio.Event()
        stale = asyncio.create_task(store.run_evaluation())
        await asyncio.sleep(0)

        store.reset_current_test()
        assert not store.in_flight
        await _ready(store)
        engine.gate.set()
        fresh = await store.run_evaluation()

        assert await stale is None
        assert store.history == (fresh,)

    async def test_expiry_during_evaluation(self):
        store, engine, clock, _ = _store(ttl=100)
        await _ready(store)
        engine.gate = asyncio.Event()

        task = asyncio.create_task(store.run_evaluation())
        await asyncio.sleep(0)
        clock.now += 100
        engine.gate.set()

        with pytest.raises(SessionExpiredError):
            await task
        assert not store.is_active
        assert store.history == ()

    async def test_result_after_teardown_is_dropped(self):
        store, engine, _, _ = _store()
        await _ready(store)
        engine.gate = asyncio.Event()

        task = asyncio.create_task(store.run_evaluation())
        await asyncio.sleep(0)
        store.teardown()
        engine.gate.set()

        assert await task is None
        assert store.history == ()


class TestResetAndHistory:
    async def test_reset_keeps_history_and_credential(self):
        store, _, _, _ = _store()
        await _ready(store)
        await store.run_evaluation()

        store.reset_current_test()

        assert len(store.history) == 1
        assert store.credential_valid
        assert store.current_test.model is None
        assert store.current_test.instructions == ""
        assert store.step == Step.SETUP

    async def test_clear_history_keeps_current_test(self):
        store, _, _, bus = _store()
        await _ready(store)
        await store.run_evaluation()
        before = store.current_test.to_dict()

        store.clear_history()

        assert store.history == ()
        assert store.current_test.to_dict() == before
        assert events.HISTORY_CLEARED in bus.names()


class _CappedStorage(InMemorySessionStorage):
    """Rejects payloads with more than max_runs history entries"""

    def __init__(self, max_runs: int):
        super().__init__()
        self.max_runs = max_runs

    def set(self, session_id, payload):
        if len(payload["history"]) > self.max_runs:
            raise StorageError("Session storage limit exceeded")
        super().set(session_id, payload)


class TestPersistence:
    async def test_persisted_fields(self):
        storage = InMemorySessionStorage()
        store, _, _, _ = _store(storage=storage)
        await _ready(store)
        await store.run_evaluation()

        payload = storage.get(store.session_id)

        assert set(payload) == {"encrypted_api_key", "current_test", "history"}
        assert len(payload["history"]) == 1
        assert payload["current_test"]["status"] == "complete"
        assert API_KEY not in json.dumps(payload)

    async def test_oldest_runs_evicted_on_overflow(self):
        storage = _CappedStorage(max_runs=2)
        store, _, _, _ = _store(storage=storage)
        await _ready(store)

        runs = [await store.run_evaluation() for _ in range(3)]

        assert store.history == (runs[1], runs[2])
        assert [r["id"] for r in storage.get(store.session_id)["history"]] == [runs[1].id, runs[2].id]

    async def test_new_run_is_never_evicted(self):
        storage = _CappedStorage(max_runs=0)
        store, _, _, bus = _store(storage=storage)
        await _ready(store)

        with pytest.raises(StorageError):
            await store.run_evaluation()

        assert store.history == ()
        assert store.current_test.status == TestStatus.ERROR
        assert store.current_test.response is None
        assert "limit exceeded" in store.current_test.error
        assert store.step == Step.TEST
        assert storage.get(store.session_id)["history"] == []
        assert events.EVALUATION_COMPLETED not in bus.names()
        assert events.EVALUATION_FAILED in bus.names()
        assert not store.in_flight

    async def test_new_run_evicts_older_runs_first(self):
        storage = _CappedStorage(max_runs=1)
        store, _, _, _ = _store(storage=storage)
        await _ready(store)

        await store.run_evaluation()
        latest = await store.run_evaluation()

        assert store.history == (latest,)
        assert store.step == Step.RESULTS

    async def test_overflow_without_history_raises(self):
        storage = _CappedStorage(max_runs=-1)
        store, _, _, _ = _store(storage=storage)
        with pytest.raises(StorageError):
            store.initialize()
