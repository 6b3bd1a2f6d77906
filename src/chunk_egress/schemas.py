# In src/chunk_egress/schemas.py

from typing import TypedDict

from pydantic import BaseModel, Field, field_validator

# --- Static Type Hinting (for mypy and IDEs) ---


class ChunkMetadataDict(TypedDict, total=False):
    """
    A TypedDict representing the raw metadata handed over by the buffering
    layer. Used for static type analysis of un-validated input.
    """

    timekey: int | None
    tag: str | None
    variables: dict[str, str]


# --- Runtime Validation (using Pydantic) ---


class ChunkMetadata(BaseModel):
    """
    Pydantic model for the metadata attached to a buffered chunk.

    ``timekey`` is the start of the chunk's time bucket in epoch seconds and is
    absent when the buffer is not keyed by time.
    """

    model_config = {"frozen": True}

    timekey: int | None = Field(None, ge=0)
    tag: str | None = None
    variables: dict[str, str] = Field(default_factory=dict)

    @field_validator("variables")
    @classmethod
    def validate_variable_names(cls, value: dict[str, str]) -> dict[str, str]:
        for name in value:
            if not name or "}" in name or "{" in name:
                raise ValueError(f"Invalid chunk key name: {name!r}")
        return value
