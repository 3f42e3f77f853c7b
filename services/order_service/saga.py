import structlog
from shared.observability import ecomm_order_compensation_total

logger = structlog.get_logger(__name__)


class SagaFailed(Exception):
    """A saga step raised. Compensations for the completed steps have already run."""

    def __init__(self, step_name: str, cause: Exception, compensation_failures: list):
        super().__init__(f"Saga step '{step_name}' failed: {cause}")
        self.step_name = step_name
        self.cause = cause
        self.compensation_failures = compensation_failures


class SagaStep:
    def __init__(self, name, action, compensation=None):
        self.name = name
        self.action = action
        self.compensation = compensation


class SagaOrchestrator:
    def __init__(self):
        self.steps = []

    def add_step(self, name: str, action, compensation=None):
        """Builder pattern to add a step and its rollback compensation."""
        self.steps.append(SagaStep(name, action, compensation))
        return self

    async def execute(self, ctx: dict):
        """Executes steps sequentially. Triggers rollback on any exception."""
        executed_steps = []
        for step in self.steps:
            try:
                await step.action(ctx)
            except Exception as e:
                logger.error("saga_step_failed", step=step.name, error=str(e))
                failures = await self._rollback(executed_steps, ctx)
                raise SagaFailed(step.name, e, failures) from e
            executed_steps.append(step)
        return True

    async def _rollback(self, executed_steps: list, ctx: dict) -> list:
        """Executes compensations in reverse order. Returns the names of compensations that failed."""
        logger.info("saga_rollback_started", steps=[s.name for s in executed_steps])
        failures = []
        for step in reversed(executed_steps):
            if not step.compensation:
                continue
            try:
                await step.compensation(ctx)
                logger.info("saga_compensation_succeeded", step=step.name)
                ecomm_order_compensation_total.labels(step_name=step.name, outcome="success").inc()
            except Exception as ce:
                # A failing compensation MUST NOT block other compensations
                logger.critical(
                    "saga_compensation_failed",
                    step=step.name,
                    error=str(ce),
                    detail="Manual intervention may be required",
                )
                ecomm_order_compensation_total.labels(step_name=step.name, outcome="failed").inc()
                failures.append(step.name)
        return failures
