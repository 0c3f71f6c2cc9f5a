from typing import Iterable, Optional


class PipelineError(Exception):
    """Base class for orchestration errors."""


class PipelineDefinitionError(PipelineError):
    """Step table is inconsistent (ordering, reads before writes, duplicate writers)."""


class MissingStateError(PipelineError):
    def __init__(self, step_id: int, missing: Iterable[str]):
        self.step_id = step_id
        self.missing = sorted(missing)
        super().__init__(f"step {step_id} needs {', '.join(self.missing)}")


class StepContractError(PipelineError):
    """A step returned something it did not declare, or a payload that does not validate."""

    def __init__(self, step_id: int, detail: str, cause: Optional[Exception] = None):
        self.step_id = step_id
        super().__init__(f"step {step_id}: {detail}" + (f" ({cause})" if cause else ""))
