"""
Saga Module

Multi-step writes against a store with no atomic guarantee across steps.
Steps run strictly in order; a critical step failure stops the saga and the
result says exactly which steps were committed before it, so the caller can
pick the right compensation. Non-critical steps are best-effort: their
failure is logged and the saga carries on.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .ledger import LedgerContext, LedgerUpdate
from .logging_config import get_logger, log_action

logger = get_logger("loan_ledger.saga")

STEP_UPDATE_ENTRY = "update_schedule_entry"
STEP_APPEND_LOG = "append_ledger_log"
STEP_UPDATE_AGGREGATE = "update_loan_aggregate"


@dataclass
class SagaStep:
    """One write of a saga"""
    name: str
    action: Callable[[], object]
    critical: bool = True


@dataclass
class SagaResult:
    """Outcome of running a saga"""
    committed: List[str] = field(default_factory=list)
    failed_step: Optional[str] = None
    error: Optional[Exception] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.failed_step is None

    @property
    def partially_applied(self) -> bool:
        """A critical step failed after at least one step was committed"""
        return self.failed_step is not None and bool(self.committed)


class Saga:
    """Ordered list of steps executed one after another"""

    def __init__(self, name: str, steps: List[SagaStep], context: Optional[LedgerContext] = None):
        self.name = name
        self.steps = steps
        self.context = context

    def execute(self) -> SagaResult:
        result = SagaResult()
        lender_id = self.context.lender_id if self.context else None
        correlation_id = self.context.correlation_id if self.context else None

        for step in self.steps:
            try:
                step.action()
            except Exception as e:
                if not step.critical:
                    result.warnings.append(f"{step.name}: {e}")
                    log_action(
                        logger, "warning", f"Best-effort step {step.name} failed: {e}",
                        lender_id=lender_id, action=self.name, resource=step.name,
                        correlation_id=correlation_id
                    )
                    continue

                result.failed_step = step.name
                result.error = e
                log_action(
                    logger, "error", f"Saga {self.name} stopped at {step.name}: {e}",
                    lender_id=lender_id, action=self.name, resource=step.name,
                    correlation_id=correlation_id,
                    extra={"committed": list(result.committed)}
                )
                return result

            result.committed.append(step.name)

        return result


def build_repayment_saga(store, update: LedgerUpdate, context: LedgerContext,
                         write_log: bool = True) -> Saga:
    """
    Steps that persist one recorded payment.

    The entry is written first and the loan aggregate last, so the aggregate
    step can rely on the entry being final. The log append sits in between
    and is best-effort.

    Args:
        store: LoanStore to write through
        update: Ledger result to persist
        context: Identity recorded in the log
        write_log: Whether to append to the repayment log
    """
    entry = update.entry
    loan = update.loan

    steps = [
        SagaStep(
            name=STEP_UPDATE_ENTRY,
            action=lambda: store.update_schedule_entry(
                entry.id, entry.actual_amount, entry.paid_at, entry.status, entry.note
            ),
        ),
    ]
    if write_log:
        steps.append(SagaStep(
            name=STEP_APPEND_LOG,
            action=lambda: store.append_ledger_log(
                loan.id, entry.id, entry.actual_amount, context.actor
            ),
            critical=False,
        ))
    steps.append(SagaStep(
        name=STEP_UPDATE_AGGREGATE,
        action=lambda: store.update_loan_aggregate(loan.id, loan.amount_repaid, loan.status),
    ))

    return Saga("record_payment", steps, context)
