import math
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chore_anchors.errors import AnchorValidationError

DEFAULT_MIN_DURATION_SECONDS = 60


class CamelModel(BaseModel):
    # JSON keeps the camelCase names used by the mobile client and the sync server
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class Position(CamelModel):
    x: float = Field(allow_inf_nan=False)
    y: float = Field(allow_inf_nan=False)
    z: float = Field(allow_inf_nan=False)


class AnchorRecord(CamelModel):
    # fields added by other clients survive a store or sync round trip
    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    position: Position
    assigned_kid_id: Optional[str] = None  # weak reference to a kid, never owned
    completed: bool = False
    qr_start_code: str = Field(min_length=1)
    qr_end_code: str = Field(min_length=1)
    min_duration_seconds: int = Field(default=DEFAULT_MIN_DURATION_SECONDS, gt=0)
    started_at: Optional[int] = None  # epoch ms
    finished_at: Optional[int] = None  # epoch ms
    history: List[Dict[str, Any]] = Field(default_factory=list)


class QrCodes(BaseModel):
    start: str
    end: str


class FinishResult(CamelModel):
    finished_at: int
    completed: bool
    duration: float  # seconds


AnchorInput = Union[AnchorRecord, Mapping[str, Any]]


def as_mapping(candidate: AnchorInput) -> Mapping[str, Any]:
    if isinstance(candidate, BaseModel):
        return candidate.model_dump(by_alias=True)
    return candidate


def _is_number(value: Any) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value))


def validate_anchor(candidate: AnchorInput) -> Optional[AnchorValidationError]:
    """Check name, position and description, in that order.

    Returns the first failure as an (unraised) AnchorValidationError, or None.
    """
    data = as_mapping(candidate)
    if not data.get("name"):
        return AnchorValidationError("Anchor must have a name.")
    position = data.get("position")
    if isinstance(position, BaseModel):
        position = position.model_dump()
    if not isinstance(position, Mapping) or not all(
            _is_number(position.get(axis)) for axis in ("x", "y", "z")):
        return AnchorValidationError("Anchor position must be an object with x, y, z numbers.")
    if not data.get("description"):
        return AnchorValidationError("Anchor must have a description.")
    return None


def to_wire_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Rename snake_case AnchorRecord attribute keys to their camelCase aliases."""
    aliases = {name: info.alias or to_camel(name) for name, info in AnchorRecord.model_fields.items()}
    return {aliases.get(key, key): value for key, value in data.items()}
