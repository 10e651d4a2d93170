"""Action schemas.

An AgentAction is the persisted record of one remediation step the Decider
recommended. It is created when the Actor receives a Decision, moves through
the approval state machine, and ends with executed=True once a handler has
run for it, whether the handler succeeded or not.

    pending ──approve──▶ approved ──handler──▶ executed
       │
       └──reject──▶ rejected (terminal)

    auto_approved ──handler──▶ executed
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from utils.clock import utcnow


class ActionType(str, Enum):
    """Every remediation the agent knows how to recommend."""

    AUTO_REPLY = "auto_reply"
    ESCALATE_ENGINEERING = "escalate_engineering"
    ESCALATE_SUPPORT = "escalate_support"
    NOTIFY_MERCHANT = "notify_merchant"
    NOTIFY_MERCHANTS_BATCH = "notify_merchants_batch"
    UPDATE_DOCUMENTATION = "update_documentation"
    APPLY_MITIGATION = "apply_mitigation"
    ROLLBACK_RECOMMENDATION = "rollback_recommendation"
    CONFIG_FIX_SUGGESTION = "config_fix_suggestion"
    CREATE_INCIDENT = "create_incident"


class RiskLevel(str, Enum):
    """Blast radius of an action. High and critical always require approval."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


HIGH_RISK_LEVELS = frozenset({RiskLevel.HIGH, RiskLevel.CRITICAL})


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    AUTO_APPROVED = "auto_approved"


class AgentAction(BaseModel):
    """A persisted remediation action.

    details is kept as a plain dict here because this is the storage and
    wire representation. Use schemas.details.parse_details() to get the
    typed variant for the action_type.
    """

    id: str
    incident_id: str | None = None
    ticket_id: str | None = None
    action_type: ActionType
    description: str
    details: dict[str, Any] | None = None
    confidence: float = Field(ge=0.0, le=1.0)
    risk_level: RiskLevel
    requires_approval: bool
    approval_status: ApprovalStatus
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    executed: bool = False
    executed_at: datetime | None = None
    execution_result: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=utcnow)


class ActionContext(BaseModel):
    """Extra information the orchestrator hands the Actor for one Decision.

    Attributes:
        incident_id: Incident the actions relate to, if one already exists.
        merchant_ids: Merchants to notify or mitigate for. The orchestrator
            passes the reasoning result's affected merchants here.
        ticket_id: Support ticket the actions relate to.
    """

    incident_id: str | None = None
    merchant_ids: list[str] | None = None
    ticket_id: str | None = None
