"""Domain models - pure Python dataclasses representing business entities"""

import enum
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Generic, List, Optional, Tuple, TypeVar

T = TypeVar("T")


class CaseStage(str, enum.Enum):
    SOFT = "SOFT"
    HARD = "HARD"
    LEGAL = "LEGAL"


class CaseStatus(str, enum.Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"

    @property
    def is_terminal(self) -> bool:
        return self in (CaseStatus.RESOLVED, CaseStatus.CLOSED)


ACTIVE_STATUSES = (CaseStatus.OPEN, CaseStatus.IN_PROGRESS)


class AssignmentGroup(str, enum.Enum):
    TIER1 = "Tier1"
    TIER2 = "Tier2"
    LEGAL = "Legal"


# Queue that owns a case when a rule routes it to a group without naming an agent
DEFAULT_ASSIGNEES = {
    AssignmentGroup.TIER1: "Tier1Queue",
    AssignmentGroup.TIER2: "Tier2Queue",
    AssignmentGroup.LEGAL: "LegalDesk",
}


class LoanStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    DEFAULTED = "DEFAULTED"


class ActionType(str, enum.Enum):
    CALL = "CALL"
    SMS = "SMS"
    EMAIL = "EMAIL"
    WHATSAPP = "WHATSAPP"


class ActionOutcome(str, enum.Enum):
    NO_ANSWER = "NO_ANSWER"
    PROMISE_TO_PAY = "PROMISE_TO_PAY"
    PAID = "PAID"
    WRONG_NUMBER = "WRONG_NUMBER"


@dataclass(frozen=True)
class RuleConditions:
    """Predicate over (dpd, risk score); unset bounds are ignored"""

    dpd_min: Optional[int] = None
    dpd_max: Optional[int] = None
    dpd_gt: Optional[int] = None
    risk_score_gt: Optional[float] = None


@dataclass(frozen=True)
class RuleActions:
    """What a matching rule overrides"""

    stage: Optional[CaseStage] = None
    assign_group: Optional[AssignmentGroup] = None
    assigned_to: Optional[str] = None


@dataclass(frozen=True)
class AssignmentRule:
    """Single entry of the rule catalog"""

    code: str
    priority: int
    conditions: RuleConditions = field(default_factory=RuleConditions)
    actions: RuleActions = field(default_factory=RuleActions)
    description: str = ""


@dataclass(frozen=True)
class Decision:
    """Output of rule evaluation for one case"""

    stage: CaseStage
    assignment_group: AssignmentGroup
    assigned_to: str
    matched_rules: Tuple[str, ...]
    reason: str


@dataclass
class NewCustomer:
    name: str
    phone: str
    email: str
    country: str
    risk_score: float


@dataclass
class NewLoan:
    principal: Decimal
    outstanding: Decimal
    due_date: date


@dataclass
class AssignmentResult:
    """Outcome of an assignment run"""

    case_id: int
    stage: CaseStage
    assigned_to: str
    version: int
    matched_rules: List[str]
    reason: str
    decision_key: str
    changed: bool


@dataclass
class CaseFilters:
    """Optional filters for case listing"""

    status: Optional[CaseStatus] = None
    stage: Optional[CaseStage] = None
    dpd_min: Optional[int] = None
    dpd_max: Optional[int] = None
    assigned_to: Optional[str] = None


@dataclass
class Page(Generic[T]):
    """One page of a stable, paginated listing"""

    items: List[T]
    page: int
    page_size: int
    total: int
    total_pages: int


@dataclass
class DashboardMetrics:
    open_cases_count: int
    resolved_today_count: int
    avg_open_dpd: float


@dataclass(frozen=True)
class CaseSnapshot:
    """Decision inputs and outputs of a case as read at one version"""

    case_id: int
    version: int
    dpd: int
    stage: CaseStage
    assignment_group: Optional[AssignmentGroup]
    assigned_to: Optional[str]
    due_date: date
    risk_score: float


@dataclass
class ReconciliationReport:
    """Counts produced by one reconciliation pass"""

    examined: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
