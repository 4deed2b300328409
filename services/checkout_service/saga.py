from typing import Any, List, Optional

import structlog
from pydantic import BaseModel

from shared.observability import ecomm_best_effort_failures_total

logger = structlog.get_logger(__name__)


class PartialFailure(Exception):
    """Raised by a step that did part of its work; `detail` says what."""

    def __init__(self, message: str, detail: Any = None):
        self.detail = detail
        super().__init__(message)


class StepResult(BaseModel):
    name: str
    ok: bool
    best_effort: bool = False
    error: Optional[str] = None
    detail: Any = None


class SagaReport(BaseModel):
    steps: List[StepResult] = []

    @property
    def failures(self) -> List[StepResult]:
        return [s for s in self.steps if not s.ok]

    @property
    def complete(self) -> bool:
        return not self.failures


class SagaStep:
    def __init__(self, name, action, best_effort=False):
        self.name = name
        self.action = action
        self.best_effort = best_effort


class SagaOrchestrator:
    def __init__(self):
        self.steps = []

    def add_step(self, name: str, action, best_effort: bool = False):
        """Builder pattern to add a step."""
        self.steps.append(SagaStep(name, action, best_effort))
        return self

    async def execute(self, ctx: dict) -> SagaReport:
        """
        Executes steps sequentially.

        A failing critical step stops the run and re-raises; critical steps
        are expected to leave nothing behind when they fail. A failing
        best-effort step is recorded in the report and the saga carries on.
        """
        report = SagaReport()
        for step in self.steps:
            try:
                detail = await step.action(ctx)
            except Exception as e:
                logger.error("saga.step_failed", step=step.name, best_effort=step.best_effort, error=str(e))
                if not step.best_effort:
                    raise
                ecomm_best_effort_failures_total.labels(step_name=step.name).inc()
                report.steps.append(
                    StepResult(
                        name=step.name,
                        ok=False,
                        best_effort=True,
                        error=str(e),
                        detail=getattr(e, "detail", None),
                    )
                )
                continue
            report.steps.append(StepResult(name=step.name, ok=True, best_effort=step.best_effort, detail=detail))
        return report
