"""Pydantic schemas for API request and response models."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: str
    content: Any


class ChatCompletionRequest(BaseModel):
    """Fields the proxy relies on; everything else is forwarded untouched."""

    model_config = ConfigDict(extra="allow")

    model: str
    messages: List[ChatMessage]
    stream: Optional[bool] = False


class ErrorResponse(BaseModel):
    error: Any


class StatusResponse(BaseModel):
    status: str
    version: str


class SelfTestResponse(BaseModel):
    status: str
    timestamp: str
    env: Dict[str, bool]
    cache: Dict[str, Any]
