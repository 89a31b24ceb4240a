from datetime import datetime
from uuid import UUID, uuid4
from pydantic import BaseModel, Field, field_validator
from wayfinder.models.graph import GeneratedVia, LateralLink, RelationType, utc_now

def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None

class ConnectionChoice(BaseModel):
    """The lateral connection the user picked before answering the prompt."""
    concept: str
    type: RelationType
    reason: str | None = None

class MicroDiscoveryCreate(BaseModel):
    node_id: UUID
    response: str
    questions: list[str]
    connection: ConnectionChoice | None = None

    @field_validator("response")
    @classmethod
    def response_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("response is required and must be a non-empty string")
        return value

class MicroDiscovery(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    user_id: str
    node_id: UUID
    prompt: str
    response: str
    created_at: datetime = Field(default_factory=utc_now)

class NewNodeOut(BaseModel):
    id: UUID
    concept: str
    generated_via: GeneratedVia

class MicroDiscoveryOut(BaseModel):
    id: UUID
    node_id: UUID
    prompt: str
    response: str
    created_at: datetime
    new_node: NewNodeOut | None = None
    lateral_link: LateralLink | None = None

class ReflectionCreate(BaseModel):
    node_id: UUID
    tag: str
    surprise: str | None = None
    metaphor: str | None = None

    @field_validator("tag")
    @classmethod
    def tag_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("tag is required and must be a non-empty string")
        return value

    @field_validator("surprise", "metaphor")
    @classmethod
    def strip_optional(cls, value: str | None) -> str | None:
        return _blank_to_none(value)

class Reflection(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    user_id: str
    node_id: UUID
    tag: str
    surprise: str | None = None
    metaphor: str | None = None
    created_at: datetime = Field(default_factory=utc_now)

class ReflectionOut(BaseModel):
    id: UUID
    node_id: UUID
    tag: str
    surprise: str | None = None
    metaphor: str | None = None
    created_at: datetime

class SeedRef(BaseModel):
    id: UUID
    text: str

class MicroDiscoveryRef(BaseModel):
    id: UUID
    prompt: str
    response: str

class ReflectionNode(BaseModel):
    id: UUID
    concept: str
    generated_via: GeneratedVia
    seed: SeedRef | None = None
    micro_discovery: MicroDiscoveryRef | None = None

class ReflectionDetail(ReflectionOut):
    node: ReflectionNode

class TagCount(BaseModel):
    tag: str
    count: int

class ReflectionList(BaseModel):
    reflections: list[ReflectionDetail]
    tag_counts: list[TagCount]

class SelfNarrative(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    user_id: str
    narrative: str
    created_at: datetime = Field(default_factory=utc_now)

class SelfNarrativeOut(BaseModel):
    id: UUID
    narrative: str
    created_at: datetime
