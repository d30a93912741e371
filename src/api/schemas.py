"""Request and response models for the rule-management API.

Responses are a tagged pair: ``DataResponse[T]`` for success and
``ErrorResponse`` for failures, so clients never see an untyped envelope.
"""

from __future__ import annotations

from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from core.models import Rule

T = TypeVar("T")


class RuleBody(BaseModel):
    """Rule as sent and returned by the API; absent fields are omitted."""

    id: Optional[str] = None
    name: str = ""
    pattern: Optional[str] = None
    keywords: Optional[List[str]] = None

    def to_rule(self) -> Rule:
        return Rule.from_record(self.model_dump())

    @classmethod
    def from_rule(cls, rule: Rule) -> "RuleBody":
        return cls(**rule.to_record())


class UpdateRulesRequest(BaseModel):
    rules: List[RuleBody]


class AddRuleRequest(BaseModel):
    name: str = ""
    pattern: Optional[str] = None
    keywords: Optional[List[str]] = None


class RemoveRuleRequest(BaseModel):
    id: str


class MatchRequest(BaseModel):
    text: str


class HealthData(BaseModel):
    status: str


class RulesData(BaseModel):
    rules: List[RuleBody]


class RuleData(BaseModel):
    rule: RuleBody


class MessageData(BaseModel):
    message: str


class MatchData(BaseModel):
    matched: bool
    labels: List[str]
    version: int


class DataResponse(BaseModel, Generic[T]):
    """Success variant."""

    data: T


class ErrorResponse(BaseModel):
    """Error variant."""

    code: str
    message: str
    meta: Optional[dict[str, Any]] = Field(default=None)
