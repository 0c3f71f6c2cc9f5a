import logging
from typing import Callable, Dict, Optional, Sequence, Tuple

from langgraph.graph import END, StateGraph
from pydantic import BaseModel, Field, ValidationError

from .errors import MissingStateError, PipelineError, StepContractError
from .steps import STEPS, validate_definitions
from .streaming import ProgressEvent, encode_events, read_stream, result_from_complete
from .state import (
    ItemError,
    OnboardingForm,
    PipelineRun,
    PipelineState,
    StepDefinition,
    StepRecord,
    StepResult,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, ProgressEvent], None]


class RunState(BaseModel):
    state: PipelineState = Field(default_factory=PipelineState)
    records: Dict[int, StepRecord] = Field(default_factory=dict)
    halted: bool = False


def _node_name(step_id: int) -> str:
    return f"step_{step_id}"


def _route(next_node: str):
    def route(rs: RunState) -> str:
        return END if rs.halted else next_node
    return route


def _record(step: StepDefinition, result: StepResult) -> StepRecord:
    return StepRecord(
        step_id=step.id,
        label=step.label,
        success=result.success,
        message=result.message,
        errors=result.errors,
        warnings=result.warnings,
    )


class Orchestrator:
    """Runs the onboarding steps over one PipelineState.

    Steps see a copy of the state and hand back a payload; only the
    orchestrator writes to the state, and only the fields a step declares.
    """

    def __init__(
        self,
        services,
        form: Optional[OnboardingForm] = None,
        steps: Sequence[StepDefinition] = STEPS,
        on_progress: Optional[ProgressCallback] = None,
    ):
        validate_definitions(steps)
        self.services = services
        self.form = form or OnboardingForm()
        self.steps = list(steps)
        self.by_id = {s.id: s for s in self.steps}
        self.on_progress = on_progress

    def step(self, step_id: int) -> StepDefinition:
        try:
            return self.by_id[step_id]
        except KeyError:
            raise PipelineError(f"no step {step_id}") from None

    # --------- single step ---------
    def _request(self, step: StepDefinition, state: PipelineState) -> BaseModel:
        return step.build_request(state.model_copy(deep=True), self.form)

    def _execute(self, step: StepDefinition, state: PipelineState) -> StepResult:
        """Handler exceptions become a failed result; nothing escapes."""
        try:
            request = self._request(step, state)
            outcome = step.handler(request, self.services)
            if step.streaming:
                def forward(event: ProgressEvent) -> None:
                    if self.on_progress is not None:
                        self.on_progress(step.id, event)
                return result_from_complete(read_stream(encode_events(outcome), forward))
            return outcome
        except Exception as exc:
            logger.exception("step %d (%s) raised", step.id, step.label)
            return StepResult(
                success=False,
                message=f"{step.label} failed: {exc}",
                errors=[ItemError(key=f"step{step.id}", reason=str(exc))],
            )

    def _merge(self, step: StepDefinition, state: PipelineState, result: StepResult) -> PipelineState:
        undeclared = set(result.payload) - step.writes
        if undeclared:
            raise StepContractError(step.id, f"wrote undeclared fields {sorted(undeclared)}")
        if not result.payload:
            return state
        merged = state.model_dump()
        merged.update(
            {k: [x.model_dump() if isinstance(x, BaseModel) else x for x in v] if isinstance(v, list) else v
             for k, v in result.payload.items()}
        )
        try:
            return PipelineState.model_validate(merged)
        except ValidationError as exc:
            raise StepContractError(step.id, "payload does not fit the pipeline state", exc) from exc

    def _apply(self, step: StepDefinition, state: PipelineState) -> Tuple[StepResult, PipelineState]:
        logger.info("step %d: %s", step.id, step.label)
        result = self._execute(step, state)
        try:
            new_state = self._merge(step, state, result)
        except StepContractError as exc:
            logger.error("%s", exc)
            result = StepResult(
                success=False,
                message=str(exc),
                errors=[ItemError(key=f"step{step.id}", reason=str(exc))],
            )
            new_state = state
        if result.success:
            logger.info("step %d done: %s", step.id, result.message)
        else:
            logger.warning("step %d failed: %s", step.id, result.message)
        return result, new_state

    def check_requires(self, step: StepDefinition, state: PipelineState) -> None:
        missing = [f for f in step.requires if not getattr(state, f)]
        if missing:
            raise MissingStateError(step.id, missing)

    def run_step(self, step_id: int, state: PipelineState) -> Tuple[StepResult, PipelineState]:
        """Ad-hoc execution of one step against caller-supplied state."""
        step = self.step(step_id)
        self.check_requires(step, state)
        return self._apply(step, state)

    # --------- graph ---------
    def _node(self, step: StepDefinition):
        def node(rs: RunState) -> dict:
            result, state = self._apply(step, rs.state)
            records = dict(rs.records)
            records[step.id] = _record(step, result)
            return {"state": state, "records": records, "halted": not result.success}
        return node

    def build_graph(self, start_id: int = 1):
        pending = [s for s in self.steps if s.id >= start_id]
        g = StateGraph(RunState)
        for s in pending:
            g.add_node(_node_name(s.id), self._node(s))

        g.set_entry_point(_node_name(pending[0].id))
        for current, following in zip(pending, pending[1:]):
            g.add_conditional_edges(_node_name(current.id), _route(_node_name(following.id)))
        g.add_edge(_node_name(pending[-1].id), END)
        return g.compile()

    def _run_from(self, start_id: int, rs: RunState) -> PipelineRun:
        app = self.build_graph(start_id)
        result = app.invoke(rs)

        # LangGraph may return a dict; coerce to RunState for attribute access
        final = RunState(**result) if isinstance(result, dict) else result
        return PipelineRun(state=final.state, records=final.records, halted=final.halted)

    def run(self, state: Optional[PipelineState] = None) -> PipelineRun:
        """Steps 1..N; stops at the first failing step."""
        return self._run_from(self.steps[0].id, RunState(state=state or PipelineState()))

    def resume_point(self, run: PipelineRun) -> Optional[int]:
        failed = run.failed_steps
        if failed:
            return failed[0]
        for s in self.steps:
            if s.id not in run.records:
                return s.id
        return None

    def resume(self, run: PipelineRun) -> PipelineRun:
        """Re-run from the earliest failed (or never run) step; earlier steps are left alone."""
        start = self.resume_point(run)
        if start is None:
            logger.info("nothing to resume, every step succeeded")
            return run
        logger.info("resuming at step %d", start)
        return self._run_from(start, RunState(state=run.state, records=dict(run.records)))
