from __future__ import annotations

from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    name: str


class RegisterResponse(BaseModel):
    registered: bool
    name: str


class MoveRequest(BaseModel):
    direction: Any = None


class MoveResponse(BaseModel):
    status: str = "ok"
    outcome: str
    position: Optional[str] = None
    collected: int = 0
    replenished: bool = False


class PlayerResponse(BaseModel):
    name: str
    position: str
    score: int


class StateResponse(BaseModel):
    positions: List[Tuple[str, str]] = Field(default_factory=list)
    scores: List[Tuple[str, int]] = Field(default_factory=list)
    coins: List[Tuple[str, int]] = Field(default_factory=list)
