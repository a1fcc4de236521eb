"""
LLM-specific data models for the request/response cycle.

PromptPayload is what collaborators hand to the facade; ProviderRequest is
the per-model request passed to the injected raw call; ProviderResponse is
what a raw call must return on success.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Message(BaseModel):
    """One conversation turn."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"] = Field(default="user")
    content: str = Field(..., description="Message text")


class PromptPayload(BaseModel):
    """
    Prompt produced by the caller (prompt builder, summarization pipeline).

    `max_tokens` and `temperature` fall back to settings when unset; `model`
    is only a preference and may be overridden by policy or cost selection.
    """

    model_config = ConfigDict(frozen=True)

    messages: tuple[Message, ...] = Field(..., min_length=1)
    system: Optional[str] = Field(default=None, description="System prompt")
    max_tokens: Optional[int] = Field(default=None, ge=1, description="Completion token budget")
    temperature: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    model: Optional[str] = Field(default=None, description="Preferred initial model")

    @classmethod
    def from_text(cls, text: str, **kwargs: Any) -> "PromptPayload":
        return cls(messages=(Message(role="user", content=text),), **kwargs)


class ProviderRequest(BaseModel):
    """
    Request sent to the provider for one model.

    Provider-agnostic: the raw call decides how to put it on the wire.
    """

    model_config = ConfigDict(frozen=True)

    model: str = Field(..., description="Model id the request targets")
    messages: tuple[Message, ...]
    system: Optional[str] = None
    max_tokens: int = Field(default=4000, ge=1)
    temperature: float = Field(default=0.3, ge=0.0, le=1.0)


class ProviderResponse(BaseModel):
    """
    Successful provider answer with token accounting.

    The content is returned as-is; this layer does not parse or validate it.
    """

    model_config = ConfigDict(frozen=True)

    content: str = Field(..., description="Generated text")
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    model: Optional[str] = Field(default=None, description="Model id reported by the provider")
    stop_reason: Optional[str] = Field(default=None)
    id: Optional[str] = Field(default=None, description="Provider message id")
    raw_metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Provider-specific metadata (for debugging)",
    )
