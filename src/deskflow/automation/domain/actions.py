"""
Rule Actions
============

Closed set of actions an automation rule can run, persisted as JSON:

    {"action_type": "set_priority", "parameters": {"priority": "high"}}
"""

from typing import Annotated, Any, List, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from deskflow.config import ConversationPriority, ConversationStatus


class StatusParameters(BaseModel):
    status: ConversationStatus


class UserParameters(BaseModel):
    user_id: str = Field(..., min_length=1)


class TeamParameters(BaseModel):
    team_id: str = Field(..., min_length=1)


class TagParameters(BaseModel):
    tag: str = Field(..., min_length=1, max_length=100)


class PriorityParameters(BaseModel):
    priority: ConversationPriority


class SetStatusAction(BaseModel):
    action_type: Literal["set_status"] = "set_status"
    parameters: StatusParameters


class AssignToUserAction(BaseModel):
    action_type: Literal["assign_to_user"] = "assign_to_user"
    parameters: UserParameters


class AssignToTeamAction(BaseModel):
    action_type: Literal["assign_to_team"] = "assign_to_team"
    parameters: TeamParameters


class AddTagAction(BaseModel):
    action_type: Literal["add_tag"] = "add_tag"
    parameters: TagParameters


class SetPriorityAction(BaseModel):
    action_type: Literal["set_priority"] = "set_priority"
    parameters: PriorityParameters


RuleAction = Annotated[
    Union[SetStatusAction, AssignToUserAction, AssignToTeamAction, AddTagAction, SetPriorityAction],
    Field(discriminator="action_type"),
]

_actions_adapter = TypeAdapter(List[RuleAction])


def parse_actions(data: Any) -> List[RuleAction]:
    """Validate a stored/JSON action list. Raises pydantic.ValidationError."""
    items = [a.model_dump() if isinstance(a, BaseModel) else a for a in data]
    return _actions_adapter.validate_python(items)


def dump_actions(actions: List[RuleAction]) -> List[dict]:
    return _actions_adapter.dump_python(actions, mode="json")
