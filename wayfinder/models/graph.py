from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4
from pydantic import BaseModel, Field, field_validator
from wayfinder.models.layout import Position

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

class RelationType(str, Enum):
    ANALOGY = "analogy"
    PATTERN = "pattern"
    CONTRAST = "contrast"
    ASSOCIATION = "association"

class GeneratedVia(str, Enum):
    SEED = "seed"
    SIDEWAYS = "sideways"

class Seed(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    user_id: str
    text: str
    created_at: datetime = Field(default_factory=utc_now)

class SeedCreate(BaseModel):
    text: str

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Text is required and must be a non-empty string")
        return value

class SeedOut(BaseModel):
    id: UUID
    text: str
    created_at: datetime
    node_id: UUID | None = None

class NodeMetadata(BaseModel):
    reason: str | None = None
    parent_node_id: UUID | None = None

class ConceptNode(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    user_id: str
    seed_id: UUID | None = None
    concept: str
    generated_via: GeneratedVia = GeneratedVia.SEED
    metadata: NodeMetadata | None = None
    created_at: datetime = Field(default_factory=utc_now)

class LateralLink(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    from_node: UUID
    to_node: UUID
    relation: RelationType
    created_at: datetime = Field(default_factory=utc_now)

class LateralLinkCreate(BaseModel):
    from_node_id: UUID
    to_node_id: UUID
    relation: RelationType

class LateralLinkUpdate(BaseModel):
    relation: RelationType

class LateralConnection(BaseModel):
    """A sideways suggestion from the language model; never persisted as-is."""
    concept: str
    reason: str
    type: RelationType

class NodeRef(BaseModel):
    id: UUID
    concept: str

class SidewaysResponse(BaseModel):
    node: NodeRef
    connections: list[LateralConnection]

class DiscoveryPrompts(BaseModel):
    bridging_text: str
    questions: list[str]

class DiscoveryPromptsResponse(BaseModel):
    seed_concept: str
    lateral_connection: LateralConnection
    bridging_text: str
    questions: list[str]

class MapNode(BaseModel):
    id: str
    concept: str

class MapEdge(BaseModel):
    id: str
    from_node: str
    to_node: str
    relation: RelationType

class CuriosityMap(BaseModel):
    nodes: list[MapNode]
    edges: list[MapEdge]
    positions: dict[str, Position] | None = None
    skipped_edges: int | None = None

class MicroDiscoveryPrompt(BaseModel):
    node: NodeRef
    prompt: str
