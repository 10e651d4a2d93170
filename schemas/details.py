"""Per-action-type detail payloads.

Each action type carries a differently shaped details payload: an auto
reply needs a ticket and a response, an incident needs evidence, a
mitigation needs its mitigation type. In memory these are a discriminated
union keyed by action_type so every handler gets the shape it expects. At
the storage boundary they are serialized to a plain dict (AgentAction.details)
and parsed back with parse_details().
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from schemas.action import ActionType
from schemas.incident import Evidence


class _BaseDetails(BaseModel):
    """Fields every recommended action carries.

    Attributes:
        classification: Incident classification the action responds to.
        affected_merchants: Merchants in the reasoning result's scope.
        root_cause: Root-cause hypothesis the action is based on.
        threshold_met: Whether the confidence met the type's threshold.
        threshold_required: The type's auto-execution threshold.
        reason: Why the action was chosen when no rule explains it.
    """

    classification: str | None = None
    affected_merchants: list[str] = Field(default_factory=list)
    root_cause: str | None = None
    threshold_met: bool | None = None
    threshold_required: float | None = None
    reason: str | None = None


class AutoReplyDetails(_BaseDetails):
    action_type: Literal[ActionType.AUTO_REPLY] = ActionType.AUTO_REPLY
    ticket_id: str | None = None
    response: str | None = None


class EscalationDetails(_BaseDetails):
    action_type: Literal[ActionType.ESCALATE_ENGINEERING, ActionType.ESCALATE_SUPPORT]
    priority: str = "medium"


class NotificationDetails(_BaseDetails):
    action_type: Literal[ActionType.NOTIFY_MERCHANT, ActionType.NOTIFY_MERCHANTS_BATCH]


class IncidentDetails(_BaseDetails):
    action_type: Literal[ActionType.CREATE_INCIDENT] = ActionType.CREATE_INCIDENT
    evidence: list[Evidence] = Field(default_factory=list)
    impact_assessment: str | None = None


class SuggestionDetails(_BaseDetails):
    action_type: Literal[
        ActionType.CONFIG_FIX_SUGGESTION,
        ActionType.UPDATE_DOCUMENTATION,
        ActionType.ROLLBACK_RECOMMENDATION,
    ]


class MitigationDetails(_BaseDetails):
    action_type: Literal[ActionType.APPLY_MITIGATION] = ActionType.APPLY_MITIGATION
    mitigation_type: str = "temporary"


ActionDetails = Annotated[
    Union[
        AutoReplyDetails,
        EscalationDetails,
        NotificationDetails,
        IncidentDetails,
        SuggestionDetails,
        MitigationDetails,
    ],
    Field(discriminator="action_type"),
]

_adapter: TypeAdapter[ActionDetails] = TypeAdapter(ActionDetails)


def build_details(action_type: ActionType, **fields: Any) -> ActionDetails:
    """Construct the typed details variant for action_type."""
    return _adapter.validate_python({**fields, "action_type": ActionType(action_type)})


def parse_details(action_type: ActionType, data: dict[str, Any] | None) -> ActionDetails:
    """Deserialize a stored details dict into its typed variant.

    The stored action_type wins over whatever the dict claims, so a record
    whose details predate a schema change still parses into the variant its
    action expects.
    """
    fields = {k: v for k, v in (data or {}).items() if k != "action_type"}
    return build_details(action_type, **fields)


def dump_details(details: ActionDetails) -> dict[str, Any]:
    """Serialize a details variant to the plain dict stored on AgentAction."""
    return details.model_dump()
