from pydantic import BaseModel, Field
from typing import Dict, List


class RouteOverrideSettings(BaseModel):
    pattern: str  # Starlette path pattern, e.g. "/embed/{widget_id}"
    headers: Dict[str, str] = Field(default_factory=dict)  # Set or replace these headers
    remove: List[str] = Field(default_factory=list)  # Drop these headers entirely
    protect: List[str] = Field(default_factory=list)  # Later middleware may not change these


class HeaderPolicyConfig(BaseModel):
    headers: Dict[str, str] = Field(default_factory=dict)
    routes: List[RouteOverrideSettings] = Field(default_factory=list)
    allow_custom: bool = False  # Accept headers outside the known security header set
