"""Core data models for Studio Mogul."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

PLAYER_ID = "player"
SALARY_FLOOR = 10_000
GOSSIP_LIMIT = 6


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


class Genre(str, Enum):
    ACTION = "Action"
    COMEDY = "Comedy"
    DRAMA = "Drama"
    SCIFI = "Sci-Fi"
    HORROR = "Horror"
    ROMANCE = "Romance"


class ActorTier(str, Enum):
    A_LIST = "A-List"
    B_LIST = "B-List"
    C_LIST = "C-List"
    INDIE_DARLING = "Indie Darling"
    NEWCOMER = "Newcomer"


class ActorStatus(str, Enum):
    AVAILABLE = "Available"
    IN_PRODUCTION = "In Production"
    ON_HIATUS = "On Hiatus"
    RETIRED = "Retired"
    DECEASED = "Deceased"


class ProjectStatus(str, Enum):
    PRE_PRODUCTION = "Pre-Production"
    FILMING = "Filming"
    POST_PRODUCTION = "Post-Production"
    MARKETING = "Marketing"
    RELEASED = "Released"


class EventType(str, Enum):
    INFO = "INFO"
    GOOD = "GOOD"
    BAD = "BAD"
    AUCTION = "AUCTION"
    GOSSIP = "GOSSIP"
    AD = "AD"


class Tone(str, Enum):
    SERIOUS = "Serious"
    LIGHTHEARTED = "Lighthearted"
    DARK = "Dark"
    QUIRKY = "Quirky"


class Personality(str, Enum):
    AGGRESSIVE = "Aggressive"
    FRIENDLY = "Friendly"
    ELITIST = "Elitist"
    CHAOTIC = "Chaotic"


class LifecycleEventType(str, Enum):
    DEATH = "death"
    RETIREMENT = "retirement"
    MARRIAGE = "marriage"
    DIVORCE = "divorce"
    SCANDAL = "scandal"
    COMEBACK = "comeback"
    AWARD_NOMINATION = "award_nomination"
    AWARD_WIN = "award_win"
    PERSONAL_ISSUES = "personal_issues"
    REHAB = "rehab"
    CAREER_SLUMP = "career_slump"
    BREAKOUT_ROLE = "breakout_role"
    FEUD = "feud"
    RECONCILIATION = "reconciliation"
    AGING = "aging"


class ProductionEventKind(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class ContractStatus(str, Enum):
    ACTIVE = "active"
    TERMINATED = "terminated"
    EXPIRED = "expired"


class AwardCategory(str, Enum):
    BEST_PICTURE = "Best Picture"
    BEST_DIRECTOR = "Best Director"
    BEST_ACTOR = "Best Actor"
    BEST_ACTRESS = "Best Actress"
    BEST_SCREENPLAY = "Best Screenplay"
    BEST_CINEMATOGRAPHY = "Best Cinematography"
    BEST_SCORE = "Best Score"


@dataclass
class Actor:
    id: str
    name: str
    age: int
    gender: str
    tier: ActorTier
    salary: int
    reputation: int
    skill: int
    genres: List[Genre] = field(default_factory=list)
    status: ActorStatus = ActorStatus.AVAILABLE
    relationships: Dict[str, int] = field(default_factory=dict)
    gossip: List[str] = field(default_factory=list)
    bio: str = ""
    personality: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.tier = ActorTier(self.tier)
        self.status = ActorStatus(self.status)
        self.genres = [Genre(genre) for genre in (self.genres or [])]
        self.skill = int(clamp(self.skill, 0, 100))
        self.reputation = int(clamp(self.reputation, 0, 100))
        self.salary = max(SALARY_FLOOR, int(self.salary))
        self.relationships = {
            str(other): int(clamp(value, -100, 100))
            for other, value in (self.relationships or {}).items()
        }
        self.gossip = list(self.gossip or [])[:GOSSIP_LIMIT]
        self.personality = list(self.personality or [])

    @property
    def is_active(self) -> bool:
        """Whether the actor still takes part in the business."""

        return self.status not in (ActorStatus.RETIRED, ActorStatus.DECEASED)

    def relationship_with(self, other_id: str) -> int:
        return self.relationships.get(other_id, 0)

    def adjust_relationship(self, other_id: str, delta: int) -> int:
        value = int(clamp(self.relationship_with(other_id) + delta, -100, 100))
        self.relationships[other_id] = value
        return value

    def add_gossip(self, text: str, limit: int = GOSSIP_LIMIT) -> None:
        if not text or not text.strip():
            return
        self.gossip = [text, *self.gossip][:limit]


@dataclass
class Script:
    id: str
    title: str
    genre: Genre
    quality: float
    complexity: int = 50
    base_cost: int = 0
    current_bid: int = 0
    high_bidder_id: Optional[str] = None
    required_cast: int = 2
    tone: Tone = Tone.SERIOUS
    description: str = ""
    tagline: str = ""

    def __post_init__(self) -> None:
        self.genre = Genre(self.genre)
        self.tone = Tone(self.tone)
        self.quality = clamp(self.quality, 0, 100)


@dataclass
class ProductionEvent:
    id: str
    month: int
    phase: ProjectStatus
    kind: ProductionEventKind
    title: str
    description: str
    quality_impact: int = 0
    budget_impact: int = 0
    delay_months: int = 0


@dataclass
class Movie:
    id: str
    script_id: str
    studio_id: str
    title: str
    genre: Genre
    cast: List[str] = field(default_factory=list)
    marketing_budget: int = 0
    production_budget: int = 0
    progress: int = 0
    status: ProjectStatus = ProjectStatus.PRE_PRODUCTION
    phase_progress: float = 0.0
    quality: float = 0.0
    chemistry: int = 0
    revenue: int = 0
    release_month: int = 0
    release_year: int = 0
    estimated_release_month: Optional[int] = None
    estimated_release_year: Optional[int] = None
    reviews: List[str] = field(default_factory=list)
    production_events: List[ProductionEvent] = field(default_factory=list)
    current_budget_spent: int = 0

    def __post_init__(self) -> None:
        self.genre = Genre(self.genre)
        self.status = ProjectStatus(self.status)
        self.cast = list(self.cast or [])
        self.progress = int(clamp(self.progress, 0, 100))
        self.quality = clamp(self.quality, 0, 100)

    @property
    def is_released(self) -> bool:
        return self.status == ProjectStatus.RELEASED


@dataclass
class RivalStudio:
    id: str
    name: str
    reputation: int
    balance: int
    yearly_revenue: int = 0
    color: str = ""
    personality: Personality = Personality.FRIENDLY
    relationship: int = 0
    owned_actor_ids: List[str] = field(default_factory=list)
    owned_script_ids: List[str] = field(default_factory=list)
    project_ids: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.personality = Personality(self.personality)
        self.relationship = int(clamp(self.relationship, -100, 100))

    def adjust_relationship(self, delta: int) -> int:
        self.relationship = int(clamp(self.relationship + delta, -100, 100))
        return self.relationship


@dataclass
class GameEvent:
    id: str
    month: int
    message: str
    type: EventType = EventType.INFO
    read: bool = False

    def __post_init__(self) -> None:
        self.type = EventType(self.type)


@dataclass
class LifecycleImpact:
    reputation: int = 0
    skill: int = 0
    salary: float = 0.0
    status: Optional[ActorStatus] = None
    age: int = 0
    relationships: Dict[str, int] = field(default_factory=dict)


@dataclass
class LifecycleEvent:
    id: str
    actor_id: str
    actor_name: str
    type: LifecycleEventType
    message: str
    month: int
    impact: LifecycleImpact = field(default_factory=LifecycleImpact)
    gossip: Optional[str] = None

    @property
    def is_silent(self) -> bool:
        return not self.message


@dataclass
class Contract:
    """A talent contract binding an actor to a studio."""

    id: str
    actor_id: str
    studio_id: str
    start_month: int
    start_year: int
    duration_months: int
    monthly_salary: int
    signing_bonus: int = 0
    status: ContractStatus = ContractStatus.ACTIVE

    def __post_init__(self) -> None:
        self.status = ContractStatus(self.status)
        if self.duration_months not in (3, 6, 12):
            raise ValueError(f"Unsupported contract duration: {self.duration_months}")

    def end_month_index(self) -> int:
        return self.start_year * 12 + (self.start_month - 1) + self.duration_months


@dataclass
class StudioMessage:
    id: str
    from_id: str
    to_id: str
    content: str
    month: int
    is_public: bool = False


@dataclass
class AwardNomination:
    id: str
    category: AwardCategory
    movie_id: str
    movie_title: str
    studio_id: str
    actor_id: Optional[str] = None
    actor_name: Optional[str] = None
    is_winner: bool = False


@dataclass
class AwardsCeremony:
    id: str
    year: int
    name: str
    nominations: List[AwardNomination] = field(default_factory=list)
    completed: bool = False


@dataclass
class GameState:
    """Aggregate root for one save: everything a month advance touches."""

    month: int
    year: int
    balance: int
    reputation: int
    actors: List[Actor] = field(default_factory=list)
    market_scripts: List[Script] = field(default_factory=list)
    owned_scripts: List[Script] = field(default_factory=list)
    projects: List[Movie] = field(default_factory=list)
    rivals: List[RivalStudio] = field(default_factory=list)
    events: List[GameEvent] = field(default_factory=list)
    player_name: str = ""
    studio_name: str = ""
    messages: List[StudioMessage] = field(default_factory=list)
    ceremonies: List[AwardsCeremony] = field(default_factory=list)
    version: int = 0

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"Month out of range: {self.month}")
        for name in (
            "actors",
            "market_scripts",
            "owned_scripts",
            "projects",
            "rivals",
            "events",
            "messages",
            "ceremonies",
        ):
            if getattr(self, name) is None:
                setattr(self, name, [])

    def actor(self, actor_id: str) -> Optional[Actor]:
        return next((actor for actor in self.actors if actor.id == actor_id), None)

    def rival(self, rival_id: str) -> Optional[RivalStudio]:
        return next((rival for rival in self.rivals if rival.id == rival_id), None)

    def project(self, project_id: str) -> Optional[Movie]:
        return next((movie for movie in self.projects if movie.id == project_id), None)

    def player_projects(self) -> List[Movie]:
        return [movie for movie in self.projects if movie.studio_id == PLAYER_ID]


__all__ = [
    "PLAYER_ID",
    "SALARY_FLOOR",
    "GOSSIP_LIMIT",
    "clamp",
    "Genre",
    "ActorTier",
    "ActorStatus",
    "ProjectStatus",
    "EventType",
    "Tone",
    "Personality",
    "LifecycleEventType",
    "ProductionEventKind",
    "ContractStatus",
    "AwardCategory",
    "Actor",
    "Script",
    "ProductionEvent",
    "Movie",
    "RivalStudio",
    "GameEvent",
    "LifecycleImpact",
    "LifecycleEvent",
    "Contract",
    "StudioMessage",
    "AwardNomination",
    "AwardsCeremony",
    "GameState",
]
