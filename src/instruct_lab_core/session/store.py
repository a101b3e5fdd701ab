"""
Session Store

Owns one ephemeral session: the encrypted credential, the in-progress test,
the completed-run history, and the current workflow step.

Lifecycle: created lazily on the first action, lives for a fixed TTL from creation
(not renewed on activity), and is torn down on explicit request or expiry.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Awaitable, Callable

from instruct_lab_core import events
from instruct_lab_core.domain.entities import CurrentTest, TestRun, TestStatus
from instruct_lab_core.domain.errors import (
    ConcurrencyRejection,
    CredentialError,
    JudgeParseError,
    LabError,
    SessionExpiredError,
    StorageError,
    ValidationError,
)
from instruct_lab_core.domain.value_objects import Model, ModelPricing
from instruct_lab_core.events import EventBus
from instruct_lab_core.infrastructure.cipher import Cipher
from instruct_lab_core.lab_config import LabConfig, load_config
from instruct_lab_core.session.storage import InMemorySessionStorage, SessionStorage
from instruct_lab_core.session.vault import CredentialVault
from instruct_lab_core.use_cases.evaluation import EvaluationEngine, EvaluationParams
from instruct_lab_core.workflow import (
    Step,
    StepTransition,
    WorkflowSnapshot,
    accessible_steps,
    advance_after_evaluation,
    is_accessible,
    refusal_reason,
    request_step,
)

logger = logging.getLogger(__name__)

KeyVerifier = Callable[[str], Awaitable[bool]]


class SessionStore:
    """Single-owner session state driven by user actions"""

    def __init__(
        self,
        engine: EvaluationEngine,
        *,
        config: LabConfig | None = None,
        key_verifier: KeyVerifier | None = None,
        storage: SessionStorage | None = None,
        cipher: Cipher | None = None,
        event_bus: EventBus | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            engine: Evaluation engine used by run_evaluation()
            config: LabConfig (loads from env if not provided)
            key_verifier: Async liveness check for a raw key (format check only if None)
            storage: Session-scoped storage (in-memory with the configured bound if None)
            cipher: Cipher for the credential vault
            event_bus: Bus for lifecycle notifications
            clock: Wall-clock source in seconds
        """
        self.engine = engine
        self.config = config or load_config()
        self.events = event_bus or EventBus()
        self._key_verifier = key_verifier
        self._storage = storage
        self._clock = clock
        self.vault = CredentialVault(cipher)

        self.session_id: str | None = None
        self.created_at: float | None = None
        self.ttl_seconds: int | None = None

        self.current_test = CurrentTest()
        self._history: list[TestRun] = []
        self.step = Step.SETUP
        self.evaluation_model: Model | None = None
        self.temperature: float | None = None
        self.max_tokens: int | None = None

        self._in_flight = False
        # bumped by reset and teardown; stale evaluations compare against it
        self._generation = 0
        # bumped by teardown only; stale credential checks compare against it
        self._epoch = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self.session_id is not None

    @property
    def history(self) -> tuple[TestRun, ...]:
        return tuple(self._history)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def initialize(self) -> str:
        """Start a session; no-op if one is already active. Returns the session id."""
        if self.session_id is not None and not self.check_expiry():
            return self.session_id

        # TTL and storage bound are fixed for the session's lifetime
        self.session_id = str(uuid.uuid4())
        self.created_at = self._clock()
        self.ttl_seconds = self.config.session.ttl_seconds
        if self._storage is None:
            self._storage = InMemorySessionStorage(self.config.session.max_storage_bytes)

        logger.info("Session %s started (ttl=%ss)", self.session_id, self.ttl_seconds)
        self.events.publish(events.SESSION_STARTED, self.session_id)
        self._persist()
        return self.session_id

    def is_expired(self) -> bool:
        if self.created_at is None or self.ttl_seconds is None:
            return False
        return self._clock() >= self.created_at + self.ttl_seconds

    def remaining_seconds(self) -> float:
        if self.created_at is None or self.ttl_seconds is None:
            return 0.0
        return max(0.0, self.created_at + self.ttl_seconds - self._clock())

    def check_expiry(self) -> bool:
        """Tear the session down if its TTL has elapsed. Returns True if it expired."""
        if not self.is_expired():
            return False
        expired_id = self.session_id
        logger.info("Session %s expired", expired_id)
        self.teardown()
        self.events.publish(events.SESSION_EXPIRED, expired_id)
        return True

    def _ensure_session(self) -> None:
        self.check_expiry()
        if self.session_id is None:
            self.initialize()

    def teardown(self) -> None:
        """Clear credential, current test, and history; drop the persisted copy"""
        if self.session_id is not None and self._storage is not None:
            self._storage.remove(self.session_id)
        torn_down_id = self.session_id

        self.vault.clear()
        self.current_test = CurrentTest()
        self._history = []
        self.step = Step.SETUP
        self.evaluation_model = None
        self.temperature = None
        self.max_tokens = None
        self.session_id = None
        self.created_at = None
        self.ttl_seconds = None
        self._epoch += 1
        self._invalidate_in_flight()

        self.events.publish(events.SESSION_TORN_DOWN, torn_down_id)

    # ------------------------------------------------------------------
    # Credential
    # ------------------------------------------------------------------

    async def set_credential(self, raw_key: str) -> None:
        """
        Validate and store the API key (encrypted only)

        Raises:
            CredentialError: Malformed key or key rejected by the liveness check
            NetworkError: Liveness check could not reach the provider
        """
        self._ensure_session()
        epoch = self._epoch
        self.vault.clear()

        try:
            self.vault.store(raw_key)
            if self._key_verifier is not None and not await self._key_verifier(raw_key.strip()):
                raise CredentialError("API key was rejected")
        except LabError:
            if epoch == self._epoch:
                self.vault.clear()
                self._persist()
            raise

        if epoch != self._epoch:
            # session was torn down while the check was pending
            self.vault.clear()
            return

        self.vault.mark_valid()
        self._persist()
        self.events.publish(events.CREDENTIAL_CHANGED, True)

    def clear_credential(self) -> None:
        self.vault.clear()
        if self.is_active:
            self._persist()
        self.events.publish(events.CREDENTIAL_CHANGED, False)

    @property
    def credential_valid(self) -> bool:
        return self.vault.is_valid

    # ------------------------------------------------------------------
    # Current test inputs
    # ------------------------------------------------------------------

    def select(self, model: Model) -> None:
        self._ensure_session()
        self.current_test.model = model
        self.current_test.status = TestStatus.SETUP
        self._persist()

    def set_instructions(self, text: str) -> None:
        self._ensure_session()
        self.current_test.instructions = text
        self.current_test.status = TestStatus.INSTRUCTIONS
        self._persist()

    def set_prompt(self, text: str) -> None:
        self._ensure_session()
        self.current_test.prompt = text
        self._persist()

    def configure_evaluation(
        self,
        evaluation_model: Model | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        """Set the judge model and primary call parameters (None keeps config defaults)"""
        self._ensure_session()
        self.evaluation_model = evaluation_model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _judge_model(self) -> Model:
        if self.evaluation_model is not None:
            return self.evaluation_model
        model_id = self.config.evaluation.judge_model
        logger.warning("No judge model selected; using %s without pricing", model_id)
        provider = model_id.split("/", 1)[0].capitalize() if "/" in model_id else "Unknown"
        return Model(id=model_id, name=model_id, provider=provider, context_length=0, pricing=ModelPricing())

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    def snapshot(self) -> WorkflowSnapshot:
        return WorkflowSnapshot(
            credential_valid=self.vault.is_valid,
            model_selected=self.current_test.model is not None,
            instructions=self.current_test.instructions,
            has_response=self.current_test.response is not None,
            has_metrics=self.current_test.metrics is not None,
        )

    def accessible_steps(self) -> list[Step]:
        return accessible_steps(self.snapshot())

    def request_step(self, target: Step) -> StepTransition:
        """Move to target if reachable; the refusal reason is returned, not raised"""
        self._ensure_session()
        transition = request_step(self.step, target, self.snapshot())
        if transition.accepted and transition.step != self.step:
            self.step = transition.step
            self.events.publish(events.STEP_CHANGED, self.step)
        return transition

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def run_evaluation(self) -> TestRun | None:
        """
        Run the current test through the engine

        At most one evaluation is in flight per session. A result that arrives after the
        session or current test was reset is dropped and None is returned.

        Raises:
            ConcurrencyRejection: Another evaluation is pending
            ValidationError: The TEST step is not reachable with the current inputs
            SessionExpiredError: The TTL elapsed while the evaluation was running
            StorageError: The finished run does not fit in session storage
            LabError: Engine failure (current test is left in the error state)
        """
        self._ensure_session()
        if self._in_flight:
            raise ConcurrencyRejection("An evaluation is already running for this session")

        snapshot = self.snapshot()
        if not is_accessible(Step.TEST, snapshot):
            raise ValidationError(refusal_reason(Step.TEST, snapshot) or "Test step is not reachable")

        model = self.current_test.model
        assert model is not None
        params = EvaluationParams(
            api_key=self.vault.reveal(),
            model=model,
            evaluation_model=self._judge_model(),
            instructions=self.current_test.instructions,
            prompt=self.current_test.prompt,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

        generation = self._generation
        self._in_flight = True
        self.current_test.clear_results()
        self.current_test.status = TestStatus.TESTING
        self.events.publish(events.EVALUATION_STARTED, model.id)

        try:
            run = await self.engine.run(params)
        except LabError as e:
            if generation != self._generation:
                logger.info("Dropping failure of a reset evaluation: %s", e)
                return None
            self.current_test.status = TestStatus.ERROR
            self.current_test.error = e.message
            self._step_back_if_unreachable()
            self._persist()
            self.events.publish(events.EVALUATION_FAILED, e)
            raise
        finally:
            if generation == self._generation:
                self._in_flight = False

        if generation != self._generation:
            logger.info("Dropping result %s of a reset evaluation", run.id)
            return None
        if self.check_expiry():
            raise SessionExpiredError(
                "Session expired while the evaluation was running",
                context={"test_run_id": run.id},
            )

        self._apply_result(run)
        return run

    def _apply_result(self, run: TestRun) -> None:
        """
        Record a finished run in the current test and history, then advance to RESULTS

        Raises:
            StorageError: The run does not fit in session storage even after evicting
                every older run; the current test is left in the error state
        """
        test = self.current_test
        test.response = run.response
        test.metrics = run.metrics
        test.token_usage = run.token_usage
        test.execution_time_ms = run.execution_time_ms
        test.cost = run.cost
        test.status = TestStatus.COMPLETE
        test.error = None

        self._history.append(run)
        try:
            self._persist(keep_latest=1)
        except StorageError as e:
            self._history.pop()
            test.clear_results()
            test.status = TestStatus.ERROR
            test.error = e.message
            self._step_back_if_unreachable()
            self._persist()
            self.events.publish(events.EVALUATION_FAILED, e)
            raise

        self.step = advance_after_evaluation(Step.TEST, self.snapshot())
        self.events.publish(events.STEP_CHANGED, self.step)
        self.events.publish(events.EVALUATION_COMPLETED, run)
        if run.metrics.parse_failed:
            self.events.publish(
                events.JUDGE_PARSE_FAILED,
                JudgeParseError(run.metrics.explanation, context={"test_run_id": run.id}),
            )

    def _step_back_if_unreachable(self) -> None:
        # a failed re-run from RESULTS has cleared the results RESULTS depends on
        if not is_accessible(self.step, self.snapshot()):
            self.step = Step.TEST
            self.events.publish(events.STEP_CHANGED, self.step)

    def _invalidate_in_flight(self) -> None:
        self._generation += 1
        self._in_flight = False

    # ------------------------------------------------------------------
    # Reset / history
    # ------------------------------------------------------------------

    def reset_current_test(self) -> None:
        """Start a new test: clear the current test and return to SETUP; history and credential stay"""
        self._ensure_session()
        self.current_test = CurrentTest()
        self.step = Step.SETUP
        self._invalidate_in_flight()
        self._persist()
        self.events.publish(events.STEP_CHANGED, self.step)

    def clear_history(self) -> None:
        """Empty the history; irreversible within the session"""
        self._ensure_session()
        self._history = []
        self._persist()
        self.events.publish(events.HISTORY_CLEARED, None)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def persisted_state(self) -> dict:
        """The only fields written to session storage"""
        return {
            "encrypted_api_key": self.vault.encrypted,
            "current_test": self.current_test.to_dict(),
            "history": [run.to_dict() for run in self._history],
        }

    def _persist(self, keep_latest: int = 0) -> None:
        """Write the persisted state, evicting the oldest runs until it fits

        The newest keep_latest runs are never evicted.
        """
        if self.session_id is None or self._storage is None:
            return
        while True:
            try:
                self._storage.set(self.session_id, self.persisted_state())
                return
            except StorageError:
                if len(self._history) <= keep_latest:
                    raise
                evicted = self._history.pop(0)
                logger.warning("Storage limit reached; evicting oldest test run %s", evicted.id)
