"""SendEmailCommand and the decoder that builds it from payload bytes."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .exceptions import PoisonMessageError


class SendEmailCommand(BaseModel):
    """Immutable command decoded from a notifications message.

    Wire names are camelCase (``applicationId``); unknown fields are ignored
    and every field except ``type`` may be empty or zero.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        strict=True,
    )

    type: str = Field(..., min_length=1, description="Notification kind, e.g. 'email'")
    to: str = ""
    subject: str = ""
    body: str = ""
    application_id: str = Field(default="", alias="applicationId")
    interview_id: str = Field(default="", alias="interviewId")
    job_id: int = Field(default=0, alias="jobId")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # JSON null on an optional field means "not set", not a type error.
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None or k == "type"}
        return data


class CommandDecoder:
    """Decode JSON payload bytes into a SendEmailCommand.

    Any structural failure is poison: the same bytes would fail identically
    on every retry, so the error is never retryable.
    """

    def decode(self, raw: bytes) -> SendEmailCommand:
        """Return the command, or raise PoisonMessageError carrying *raw*."""
        try:
            return SendEmailCommand.model_validate_json(raw)
        except ValidationError as e:
            raise PoisonMessageError(_summarize(e), raw=raw) from e
        except (ValueError, TypeError) as e:
            raise PoisonMessageError(str(e), raw=raw) from e


def _summarize(error: ValidationError) -> str:
    """One-line summary of the first validation error, without the input."""
    errors = error.errors(include_url=False, include_input=False)
    if not errors:
        return "invalid payload"
    first = errors[0]
    loc = ".".join(str(part) for part in first["loc"])
    summary = f"{loc}: {first['msg']}" if loc else first["msg"]
    if len(errors) > 1:
        summary += f" (+{len(errors) - 1} more)"
    return summary
