import logging

from courier.orchestrator import OrderOrchestrator, RetryOutcome
from courier.store import OutboxQueue

logger = logging.getLogger(__name__)


class OutboxProcessor:
    """
    Drains the outbox once per trigger (operator or scheduler).

    Each task re-runs its downstream step. A step that fails again goes back
    on the queue with one more attempt; after ``max_attempts`` it is dropped
    and logged for manual follow-up. Tasks for orders the working store no
    longer holds are dropped.
    """

    def __init__(self, outbox: OutboxQueue, orchestrator: OrderOrchestrator, max_attempts: int = 5):
        self.outbox = outbox
        self.orchestrator = orchestrator
        self.max_attempts = max_attempts

    def process(self) -> int:
        batch = self.outbox.drain()
        if not batch:
            return 0

        logger.info(f"outbox: processing {len(batch)} tasks")
        for task in batch:
            outcome = self.orchestrator.retry(task)
            if outcome != RetryOutcome.FAILED:
                continue

            attempts = task.attempts + 1
            if attempts >= self.max_attempts:
                logger.error(
                    f"outbox: giving up on {task.kind.value} for order {task.order_id} after {attempts} attempts"
                )
                continue
            self.outbox.enqueue(task.model_copy(update={"attempts": attempts}))

        return len(batch)
