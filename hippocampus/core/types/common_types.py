from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class BankScope(str, Enum):
    SHARED = "shared"
    PRIVATE = "private"


class MemoryType(str, Enum):
    WORLD = "world"
    EXPERIENCE = "experience"
    OPINION = "opinion"
    OBSERVATION = "observation"


class MemoryCategory(str, Enum):
    PREFERENCE = "preference"
    WORKFLOW = "workflow"
    PROJECT_DECISION = "project_decision"
    FACT = "fact"


class Route(str, Enum):
    USE = "use"
    READJUST = "readjust"


# --- In-process types ---

@dataclass(frozen=True)
class TurnContext:
    """Identity of the current interaction; derived per turn, never persisted."""
    tenant_id: str
    project_id: str
    agent_id: str
    session_id: str
    turn_id: str
    timestamp_iso: str


@dataclass(frozen=True)
class ResolvedBanks:
    shared_bank_id: str
    private_bank_id: str

    def for_scope(self, scope: BankScope) -> str:
        return self.shared_bank_id if scope == BankScope.SHARED else self.private_bank_id


@dataclass
class WeightProfile:
    """Blend of the four retrieval dimensions. Kept normalized (sum == 1)."""
    temporal: float = 0.3
    entity: float = 0.3
    meaning: float = 0.2
    path: float = 0.2

    def as_dict(self) -> Dict[str, float]:
        return {
            "temporal": self.temporal,
            "entity": self.entity,
            "meaning": self.meaning,
            "path": self.path,
        }

    @classmethod
    def from_dict(cls, values: Dict[str, float]) -> "WeightProfile":
        return cls(
            temporal=values["temporal"],
            entity=values["entity"],
            meaning=values["meaning"],
            path=values["path"],
        )


@dataclass(frozen=True)
class RecalledMemory:
    """A recall candidate; immutable for the duration of a turn."""
    id: str
    content: str
    timestamp: str
    score: float
    bank_id: str
    bank_scope: BankScope
    memory_type: str = MemoryType.WORLD.value
    temporal_score: float = 0.0
    entity_score: float = 0.0
    meaning_score: float = 0.0
    path_score: float = 0.0
    value_match_score: float = 0.0
    strategies: List[str] = field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class RouteDecision:
    route: Route
    confidence: float
    selected: List[RecalledMemory]
    reason: str


# --- Hippocampus API wire models ---

class DispositionProfile(BaseModel):
    skepticism: int = 3
    literalism: int = 3
    empathy: int = 3


class BankResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str = ""
    background: Optional[str] = None
    disposition: DispositionProfile = Field(default_factory=DispositionProfile)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def meta(self, key: str) -> str:
        value = (self.metadata or {}).get(key)
        return "" if value is None else str(value)


class ListBanksResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    banks: List[BankResponse] = Field(default_factory=list)
    total: int = 0


class CreateBankRequest(BaseModel):
    name: str
    background: Optional[str] = None
    disposition: DispositionProfile = Field(default_factory=DispositionProfile)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RecallRequest(BaseModel):
    query: str
    k_results: int
    k_per_strategy: int = 15
    temporal_weight: float = 0.3
    entity_weight: float = 0.3
    meaning_weight: float = 0.2
    path_weight: float = 0.2
    rerank: bool = True
    query_intent_mode: Literal["auto"] = "auto"
    temporal_supersession_enabled: bool = True
    consistency_mode: Literal["strong", "eventual"] = "strong"

    @classmethod
    def for_profile(cls, query: str, k_results: int, profile: WeightProfile,
                    k_per_strategy: int = 15) -> "RecallRequest":
        return cls(
            query=query,
            k_results=k_results,
            k_per_strategy=k_per_strategy,
            temporal_weight=profile.temporal,
            entity_weight=profile.entity,
            meaning_weight=profile.meaning,
            path_weight=profile.path,
        )


class MemoryRecordResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    content: str = ""
    memory_type: str = MemoryType.WORLD.value
    bank_id: str = ""
    timestamp: str = ""
    end_timestamp: Optional[str] = None
    confidence: Optional[float] = None
    provenance: Optional[Dict[str, Any]] = None


class MemoryResultResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    memory: MemoryRecordResponse
    score: Optional[float] = 0.0
    temporal_score: Optional[float] = 0.0
    entity_score: Optional[float] = 0.0
    meaning_score: Optional[float] = 0.0
    path_score: Optional[float] = 0.0
    value_match_score: Optional[float] = 0.0
    strategies: Optional[List[str]] = Field(default_factory=list)

    def to_recalled(self, scope: BankScope) -> RecalledMemory:
        return RecalledMemory(
            id=self.memory.id,
            content=self.memory.content,
            memory_type=self.memory.memory_type,
            timestamp=self.memory.timestamp,
            score=self.score or 0.0,
            temporal_score=self.temporal_score or 0.0,
            entity_score=self.entity_score or 0.0,
            meaning_score=self.meaning_score or 0.0,
            path_score=self.path_score or 0.0,
            value_match_score=self.value_match_score or 0.0,
            strategies=list(self.strategies or []),
            bank_id=self.memory.bank_id,
            bank_scope=scope,
            metadata=self.memory.provenance,
        )


class RecallStats(BaseModel):
    temporal_count: int = 0
    entity_count: int = 0
    meaning_count: int = 0
    path_count: int = 0
    total_unique: int = 0
    final_count: int = 0


class RecallResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    operation_id: str = ""
    query: str = ""
    memories: List[MemoryResultResponse] = Field(default_factory=list)
    stats: RecallStats = Field(default_factory=RecallStats)


class RememberRequest(BaseModel):
    content: str
    memory_type: Optional[str] = None
    timestamp: Optional[str] = None
    end_timestamp: Optional[str] = None
    confidence: Optional[float] = None
    metadata: Optional[Dict[str, Any]] = None
    idempotency_key: Optional[str] = None


class RememberResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    memory_id: str = ""
    event_id: str = ""
    memory_type: str = ""
    bank_id: str = ""
    timestamp: Optional[str] = None
