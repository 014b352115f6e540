"""
Ordered multi-step writes against stores that cannot share a transaction.

Each step's action receives the shared context dict and its return value is
stored under the step name. If a step raises, the steps that already
completed are compensated newest-first and the original error is re-raised.
A compensation that itself fails is logged and skipped; the remaining
compensations still run.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Action = Callable[[Dict[str, Any]], Any]
Compensation = Callable[[Dict[str, Any]], None]


@dataclass
class SagaStep:
    name: str
    action: Action
    compensation: Optional[Compensation] = None


@dataclass
class Saga:
    name: str
    steps: List[SagaStep] = field(default_factory=list)

    def step(self, name: str, action: Action, compensation: Compensation = None) -> "Saga":
        self.steps.append(SagaStep(name, action, compensation))
        return self

    def run(self, context: Dict[str, Any] = None) -> Dict[str, Any]:
        context = {} if context is None else context
        completed = []
        for step in self.steps:
            try:
                context[step.name] = step.action(context)
            except Exception:
                logger.error("Saga %s failed at step %r; compensating %d step(s)",
                             self.name, step.name, len(completed), exc_info=True)
                self._compensate(completed, context)
                raise
            completed.append(step)
        return context

    def _compensate(self, completed: List[SagaStep], context: Dict[str, Any]):
        for step in reversed(completed):
            if step.compensation is None:
                continue
            try:
                step.compensation(context)
            except Exception:
                logger.error("Saga %s: compensation for %r failed; manual cleanup needed",
                             self.name, step.name, exc_info=True)
