"""
Pydantic schemas for the control API.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

ROLES = ("publish", "play", "stream")
MEDIA_KINDS = ("audio", "video")


def _normalise_role(value: object) -> str:
    result = str(value or "publish").strip().lower()
    if result not in ROLES:
        raise ValueError(f"role must be one of {', '.join(ROLES)}")
    return result


class ParseUrlRequest(BaseModel):
    url: str
    role: str = "publish"

    @field_validator("url", mode="before")
    @classmethod
    def _require_url(cls, value: object) -> str:
        result = str(value or "").strip()
        if not result:
            raise ValueError("url is required")
        return result

    @field_validator("role", mode="before")
    @classmethod
    def _validate_role(cls, value: object) -> str:
        return _normalise_role(value)


class SessionRequest(ParseUrlRequest):
    required_media: Optional[List[str]] = Field(
        default=None,
        validation_alias=AliasChoices("required_media", "requiredMedia"),
    )
    wait: bool = False

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("required_media")
    @classmethod
    def _validate_media(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        kinds = [str(kind).strip().lower() for kind in value]
        for kind in kinds:
            if kind not in MEDIA_KINDS:
                raise ValueError(f"unknown media kind '{kind}'")
        return kinds
