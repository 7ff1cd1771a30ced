"""
Lender Profile Module

Profiles of the lenders who own loans. A loan can only be stored for a
lender that has a profile; the loan service provisions a minimal one when
it is missing.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, replace
from typing import Dict, Optional, Any

from .ledger import LedgerContext
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord, storage_errors

logger = get_logger("loan_ledger.lenders")

PROFILES_TABLE = "profiles"


@dataclass
class LenderProfile(StorageRecord):
    """Lender profile record"""
    full_name: str
    phone: str = ""
    role: str = "lender"

    def to_dict(self) -> Dict[str, Any]:
        result = self._base_dict()
        result.update({
            'full_name': self.full_name,
            'phone': self.phone,
            'role': self.role,
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LenderProfile':
        return cls(
            id=data['id'],
            created_at=cls._parse_timestamp(data['created_at']),
            updated_at=cls._parse_timestamp(data['updated_at']),
            full_name=data['full_name'],
            phone=data.get('phone') or "",
            role=data.get('role') or "lender",
        )


class LenderManager:
    """Reads and writes lender profiles"""

    def __init__(self, storage: StorageInterface, default_name: str = "Lender"):
        self.storage = storage
        self.default_name = default_name
        self.table_name = PROFILES_TABLE

    def get_profile(self, lender_id: str) -> Optional[LenderProfile]:
        with storage_errors("get_profile"):
            data = self.storage.load(self.table_name, lender_id)
        if data:
            return LenderProfile.from_dict(data)
        return None

    def upsert_profile(self, lender_id: str, full_name: str, phone: str = "",
                       role: str = "lender") -> LenderProfile:
        """
        Create the profile, or update name/phone/role of an existing one.

        Raises:
            PersistenceError: If the profile cannot be read or written
        """
        now = datetime.now(timezone.utc)
        existing = self.get_profile(lender_id)
        if existing:
            profile = replace(existing, full_name=full_name, phone=phone, role=role, updated_at=now)
        else:
            profile = LenderProfile(
                id=lender_id, created_at=now, updated_at=now,
                full_name=full_name, phone=phone, role=role
            )
        with storage_errors("upsert_profile"):
            self.storage.save(self.table_name, profile.id, profile.to_dict())
        return profile

    def provision_minimal_profile(self, context: LedgerContext) -> LenderProfile:
        """Create a bare profile for a lender from whatever the context knows"""
        profile = self.upsert_profile(
            context.lender_id,
            full_name=context.display_name or self.default_name,
            phone=context.phone or "",
        )
        log_action(
            logger, "warning", "Provisioned missing lender profile",
            lender_id=context.lender_id, action="provision_profile",
            resource=f"profile:{context.lender_id}", correlation_id=context.correlation_id
        )
        return profile
