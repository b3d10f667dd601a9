from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EstimateCreate(BaseModel):
    """
    Payload for creating an estimate.

    Numeric fields default to 0; unknown fields are ignored for storage but
    still echoed back to the caller by the create route.
    """

    model_config = ConfigDict(extra="ignore")

    project_id: int = Field(..., description="Project the estimate belongs to", gt=0)
    runtime: Optional[str] = Field(default=None, description="Programme runtime, free text")
    music_minutes: float = 0
    dialogue_hours: float = 0
    sound_design_hours: float = 0
    mix_hours: float = 0
    revision_hours: float = 0
    post_days: float = 0
    bundle_discount: bool = False
    music_cost: float = 0
    post_cost: float = 0
    discount_amount: float = 0
    total_cost: float = 0

    @field_validator("runtime", mode="before")
    @classmethod
    def blank_runtime_to_none(cls, v: Any) -> Optional[str]:
        """Empty runtimes are stored as NULL"""
        if v in ("", None):
            return None
        return str(v)

    def to_row(self) -> Dict[str, Any]:
        row = self.model_dump()
        row["bundle_discount"] = 1 if self.bundle_discount else 0
        return row


class ScopeUpsert(BaseModel):
    """Planned work for a project; one row per project, replaced on every save."""

    model_config = ConfigDict(extra="ignore")

    project_id: int = Field(..., description="Project the scope belongs to", gt=0)
    contact_email: Optional[str] = None
    music_minutes: float = 0
    dialogue_hours: float = 0
    sound_design_hours: float = 0
    mix_hours: float = 0
    revision_hours: float = 0

    @field_validator("contact_email", mode="before")
    @classmethod
    def blank_email_to_none(cls, v: Any) -> Optional[str]:
        if v in ("", None):
            return None
        return str(v)

    @field_validator(
        "music_minutes", "dialogue_hours", "sound_design_hours", "mix_hours", "revision_hours",
        mode="before",
    )
    @classmethod
    def missing_amount_to_zero(cls, v: Any) -> Any:
        return 0 if v in ("", None) else v


def default_scope(project_id: int) -> Dict[str, Any]:
    """Scope returned for a project that has never saved one"""
    return {
        "project_id": project_id,
        "contact_email": "",
        "music_minutes": 0,
        "dialogue_hours": 0,
        "sound_design_hours": 0,
        "mix_hours": 0,
        "revision_hours": 0,
    }
