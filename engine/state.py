from dataclasses import dataclass
from enum import Enum
from typing import TypedDict, Optional, List, Dict, Any, Tuple

@dataclass(frozen=True)
class AccountRecord:
    """Snapshot of the account fields used for scoring. None and "" both mean absent."""
    name: Optional[str] = None
    industry: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None

class AccountState(TypedDict, total=False):
    """State shape for the account evaluation flow."""
    account_id: str
    raw: Dict[str, Any]              # account payload as returned by the CRM
    record: AccountRecord
    contacts: List[Dict[str, Any]]
    score: int
    score_reasons: List[str]
    score_label: str                 # "87/100"
    score_badge: str                 # "success" | "warning" | "error"
    errors: List[str]

@dataclass(frozen=True)
class ValidationResult:
    """Blocking errors for a quote. Empty means the quote may be submitted."""
    errors: Tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors

class ApprovalStatus(str, Enum):
    LOADING = "loading"
    INVALID = "invalid"
    READY = "ready"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    FAILED = "failed"

@dataclass(frozen=True)
class ApprovalState:
    """Snapshot of a quote's approval workflow, as seen by the presentation layer."""
    status: ApprovalStatus
    errors: Tuple[str, ...] = ()     # only set for INVALID
    message: Optional[str] = None    # only set for FAILED

    @classmethod
    def loading(cls) -> "ApprovalState":
        return cls(ApprovalStatus.LOADING)

    @classmethod
    def invalid(cls, errors) -> "ApprovalState":
        return cls(ApprovalStatus.INVALID, errors=tuple(errors))

    @classmethod
    def failed(cls, message: str) -> "ApprovalState":
        return cls(ApprovalStatus.FAILED, message=message)

    @property
    def submit_enabled(self) -> bool:
        return self.status is ApprovalStatus.READY

    @property
    def error_message(self) -> str:
        return " ".join(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "errors": list(self.errors),
            "error_message": self.error_message,
            "message": self.message,
            "submit_enabled": self.submit_enabled,
        }
