"""
Shared dependencies for the API routers
"""

from typing import Optional

from fastapi import Header

from ..audit import RepaymentLog
from ..config import LedgerConfig, get_config
from ..ledger import LedgerContext
from ..lenders import LenderManager
from ..loans import LoanService
from ..storage import StorageInterface, create_storage
from ..store import LoanStore


class LedgerSystem:
    """Loan ledger components wired together"""

    def __init__(self, config: Optional[LedgerConfig] = None,
                 storage: Optional[StorageInterface] = None):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config)

        self.repayment_log = RepaymentLog(self.storage)
        self.lender_manager = LenderManager(self.storage, default_name=self.config.default_lender_name)
        self.store = LoanStore(self.storage, self.repayment_log)
        self.loan_service = LoanService(
            self.store,
            self.lender_manager,
            tolerance=self.config.tolerance,
            auto_provision_profiles=self.config.auto_provision_profiles,
            write_repayment_log=self.config.enable_repayment_log,
        )

    def close(self) -> None:
        self.storage.close()


_ledger_system: Optional[LedgerSystem] = None


def get_ledger_system() -> LedgerSystem:
    """Lazily built process-wide ledger system"""
    global _ledger_system
    if _ledger_system is None:
        _ledger_system = LedgerSystem()
    return _ledger_system


def lender_context(
    lender_id: str,
    x_recorded_by: Optional[str] = Header(None),
    x_lender_name: Optional[str] = Header(None),
    x_correlation_id: Optional[str] = Header(None),
) -> LedgerContext:
    """Ledger identity for the lender named in the path"""
    kwargs = {
        "recorded_by": x_recorded_by,
        "display_name": x_lender_name,
    }
    if x_correlation_id:
        kwargs["correlation_id"] = x_correlation_id
    return LedgerContext.for_lender(lender_id, **kwargs)
