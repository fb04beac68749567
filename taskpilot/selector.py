"""Agent selection by multi-dimensional scoring.

Each candidate in the pool gets a score out of 100 built from ten weighted
dimensions. Every dimension yields a fitness in [0, 1]; the weighted sum is
scaled to 100. Candidates are ranked by total score (ties keep pool order):
the top one is primary, the next two secondary, the next three fallback.

The selector only reads the pool. Rebalancing produces a recommendation and
never reassigns anything itself.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

import structlog
from opentelemetry import trace

from taskpilot.blueprints import AgentInstance, AgentPoolProvider
from taskpilot.errors import NoAgentsAvailableError
from taskpilot.models import RISK_LEVELS, RiskLevel

logger = structlog.get_logger(__name__)

Urgency = Literal["low", "medium", "high"]

URGENCY_FACTORS: dict[str, float] = {"low": 0.0, "medium": 0.5, "high": 1.0}

# Complexity where the complexity-handling dimension peaks
COMPLEXITY_REFERENCE = 6

MAX_CONFIDENCE = 0.95
SECONDARY_COUNT = 2
FALLBACK_COUNT = 3
FRESHNESS_DAYS = 30

# Rebalance thresholds
REBALANCE_MAX_ELAPSED_SECONDS = 5 * 60
REBALANCE_MIN_SUCCESS_RATE = 0.7
REBALANCE_MAX_ERRORS = 3

CAPABILITY_SYNONYMS: dict[str, frozenset[str]] = {
    "react": frozenset({"frontend", "components", "jsx"}),
    "frontend": frozenset({"react", "ui", "components", "css"}),
    "backend": frozenset({"api", "server", "database"}),
    "testing": frozenset({"test", "qa", "quality_assurance", "test_execution"}),
    "deployment": frozenset({"ci_cd", "devops", "containerization", "automation"}),
    "docker": frozenset({"containerization", "containers"}),
    "kubernetes": frozenset({"containerization", "infrastructure_as_code"}),
    "research": frozenset({"web_search", "data_analysis", "source_evaluation"}),
    "planning": frozenset({"project_planning", "task_breakdown"}),
    "documentation": frozenset({"report_writing", "docs"}),
    "debugging": frozenset({"bug_reporting", "testing"}),
    "review": frozenset({"code_review"}),
}

DOMAIN_BOOSTS: dict[str, tuple[str, ...]] = {
    "Software Development": ("code", "implement", "refactor", "bug", "function", "api", "component"),
    "Quality Assurance": ("test", "tests", "qa", "verify", "validation", "regression"),
    "DevOps and Infrastructure": ("deploy", "docker", "pipeline", "infrastructure", "kubernetes", "monitor"),
    "Research and Data Analysis": ("research", "analyze", "analysis", "investigate", "compare", "report"),
    "Strategic Planning": ("plan", "roadmap", "timeline", "breakdown", "coordinate", "milestone"),
}

# Capability tags that need a view of the whole project
WHOLE_PROJECT_TAGS = frozenset(
    {
        "architecture",
        "refactoring",
        "migration",
        "project_planning",
        "infrastructure_as_code",
        "whole_project",
        "monorepo",
    }
)

AUTONOMY_RISK_FITNESS: dict[str, dict[str, float]] = {
    "supervised": {"low": 0.4, "medium": 0.7, "high": 1.0},
    "semi-autonomous": {"low": 0.7, "medium": 1.0, "high": 0.6},
    "fully-autonomous": {"low": 1.0, "medium": 0.7, "high": 0.3},
}

AUTONOMY_CAPACITY = {"supervised": 0.4, "semi-autonomous": 0.7, "fully-autonomous": 1.0}
SCOPE_BREADTH = {"file": 0.25, "directory": 0.5, "project": 0.8, "workspace": 1.0}

_STOPWORDS = frozenset(
    {"the", "and", "for", "with", "that", "this", "from", "into", "all", "new", "add"}
)


@dataclass
class ScoringWeights:
    """Relative weight of each scoring dimension (sums to 1.0)."""

    capability: float = 0.25
    specialization: float = 0.20
    complexity: float = 0.15
    autonomy_risk: float = 0.10
    personality: float = 0.08
    working_style: float = 0.07
    context_scope: float = 0.05
    performance: float = 0.05
    availability: float = 0.03
    freshness: float = 0.02

    def as_dict(self) -> dict[str, float]:
        return dict(self.__dict__)


@dataclass
class TaskRequirements:
    """What a task needs from the agent that takes it.

    Attributes:
        description: Free-text task description
        required_capabilities: Capability tags the task calls for
        complexity: Estimate from 0 (trivial) to 10 (very hard)
        risk: Risk level of the task
        urgency: How soon the task must be done
    """

    description: str
    required_capabilities: list[str] = field(default_factory=list)
    complexity: int = 5
    risk: RiskLevel = "medium"
    urgency: Urgency = "medium"

    def __post_init__(self) -> None:
        if not 0 <= self.complexity <= 10:
            raise ValueError(f"complexity must be in [0, 10], got {self.complexity}")
        if self.risk not in RISK_LEVELS:
            raise ValueError(f"Unknown risk level: {self.risk}")
        if self.urgency not in URGENCY_FACTORS:
            raise ValueError(f"Unknown urgency: {self.urgency}")


@dataclass
class AgentScore:
    """Score of one candidate.

    Attributes:
        agent: The scored instance
        total: Weighted score out of 100
        dimensions: Unweighted fitness per dimension, each in [0, 1]
    """

    agent: AgentInstance
    total: float
    dimensions: dict[str, float]


@dataclass
class SelectionResult:
    primary: AgentInstance
    secondary: list[AgentInstance]
    fallback: list[AgentInstance]
    confidence: float
    justification: str
    scores: list[AgentScore]


@dataclass
class TaskProgress:
    """Live progress of an in-flight task."""

    elapsed_seconds: float
    success_rate: float = 1.0
    error_count: int = 0


@dataclass
class RebalanceRecommendation:
    current: AgentInstance
    recommended: AgentInstance
    reasons: list[str]


class AgentSelector:
    """Picks the best-suited agent for a task from a pool.

    Usage:
        selector = AgentSelector(AgentPool.default())
        result = selector.select(TaskRequirements("Fix the login bug", ["debugging"]))
        print(result.primary.name, result.confidence)
    """

    def __init__(
        self,
        pool: AgentPoolProvider,
        weights: ScoringWeights | None = None,
        tracer: trace.Tracer | None = None,
    ):
        self.pool = pool
        self.weights = weights or ScoringWeights()
        self.tracer = tracer or trace.get_tracer("taskpilot")

    def select(
        self, requirements: TaskRequirements, now: datetime | None = None
    ) -> SelectionResult:
        """Rank the pool for a task.

        Args:
            requirements: The task's needs
            now: Reference time for blueprint freshness (defaults to now)

        Returns:
            SelectionResult with the ranked assignment

        Raises:
            NoAgentsAvailableError: If the pool is empty
        """
        candidates = self.pool.agents()
        if not candidates:
            raise NoAgentsAvailableError("No agents available for selection")

        now = now or datetime.now()
        with self.tracer.start_as_current_span("taskpilot.agent.select") as span:
            span.set_attribute("agent.candidates", len(candidates))

            scored = [self.score(agent, requirements, now) for agent in candidates]
            # sorted() is stable, so equal totals keep pool order
            ranked = sorted(scored, key=lambda s: -s.total)

            primary = ranked[0]
            secondary = ranked[1 : 1 + SECONDARY_COUNT]
            fallback = ranked[1 + SECONDARY_COUNT : 1 + SECONDARY_COUNT + FALLBACK_COUNT]
            confidence = compute_confidence(primary, secondary)

            span.set_attribute("agent.primary", primary.agent.id)
            span.set_attribute("agent.confidence", confidence)

        logger.info(
            "Agent selected",
            agent=primary.agent.name,
            score=round(primary.total, 1),
            confidence=round(confidence, 2),
        )

        return SelectionResult(
            primary=primary.agent,
            secondary=[s.agent for s in secondary],
            fallback=[s.agent for s in fallback],
            confidence=confidence,
            justification=self._justify(primary),
            scores=ranked,
        )

    def score(
        self,
        agent: AgentInstance,
        requirements: TaskRequirements,
        now: datetime | None = None,
    ) -> AgentScore:
        """Score one agent against a task."""
        now = now or datetime.now()
        dimensions = {
            "capability": capability_fitness(agent, requirements.required_capabilities),
            "specialization": specialization_fitness(agent, requirements.description),
            "complexity": complexity_fitness(agent, requirements.complexity),
            "autonomy_risk": autonomy_risk_fitness(agent, requirements.risk),
            "personality": personality_fitness(
                agent, requirements.urgency, requirements.complexity
            ),
            "working_style": working_style_fitness(agent, requirements.complexity),
            "context_scope": context_scope_fitness(agent, requirements.required_capabilities),
            "performance": agent.success_rate,
            "availability": 1.0 if agent.is_idle else 0.3,
            "freshness": freshness_fitness(agent, now),
        }
        weights = self.weights.as_dict()
        total = 100 * sum(weights[name] * value for name, value in dimensions.items())
        return AgentScore(agent=agent, total=total, dimensions=dimensions)

    def check_rebalance(
        self, assignment: SelectionResult, progress: TaskProgress
    ) -> RebalanceRecommendation | None:
        """Recommend switching primaries when an in-flight task struggles.

        Args:
            assignment: The selection currently in use
            progress: Live progress of the task

        Returns:
            A recommendation, or None when no threshold is crossed or no idle
            alternative exists
        """
        reasons = []
        if progress.elapsed_seconds > REBALANCE_MAX_ELAPSED_SECONDS:
            reasons.append(f"running for {progress.elapsed_seconds / 60:.1f} minutes")
        if progress.success_rate < REBALANCE_MIN_SUCCESS_RATE:
            reasons.append(f"success rate {progress.success_rate:.0%}")
        if progress.error_count > REBALANCE_MAX_ERRORS:
            reasons.append(f"{progress.error_count} errors")

        if not reasons:
            return None

        alternative = next(
            (
                agent
                for agent in [*assignment.secondary, *assignment.fallback]
                if agent.is_idle and agent is not assignment.primary
            ),
            None,
        )
        if alternative is None:
            logger.info(
                "Rebalance warranted but no idle alternative",
                agent=assignment.primary.name,
                reasons=reasons,
            )
            return None

        logger.info(
            "Rebalance recommended",
            current=assignment.primary.name,
            recommended=alternative.name,
            reasons=reasons,
        )
        return RebalanceRecommendation(
            current=assignment.primary, recommended=alternative, reasons=reasons
        )

    def _justify(self, primary: AgentScore) -> str:
        weights = self.weights.as_dict()
        contributions = sorted(
            primary.dimensions.items(),
            key=lambda item: -weights[item[0]] * item[1],
        )
        strengths = ", ".join(
            f"{name.replace('_', ' ')} {value:.0%}" for name, value in contributions[:3]
        )
        return (
            f"{primary.agent.name} ({primary.agent.blueprint.specialization}) scored "
            f"{primary.total:.1f}/100; strongest: {strengths}"
        )


def compute_confidence(primary: AgentScore, secondary: list[AgentScore]) -> float:
    """Ratio of primary to best secondary score, capped at MAX_CONFIDENCE."""
    if primary.total <= 0:
        return 0.0
    if not secondary or secondary[0].total <= 0:
        return MAX_CONFIDENCE
    return min(primary.total / secondary[0].total, MAX_CONFIDENCE)


def _tokens(text: str) -> set[str]:
    return {
        word
        for word in re.split(r"[^a-z0-9]+", text.lower())
        if len(word) >= 3 and word not in _STOPWORDS
    }


def _capability_terms(capabilities: tuple[str, ...]) -> set[str]:
    terms = set()
    for capability in capabilities:
        normalized = capability.lower().replace("-", "_")
        terms.add(normalized)
        terms.update(normalized.split("_"))
    return terms


def capability_fitness(agent: AgentInstance, required: list[str]) -> float:
    """Exact tag overlap, with half credit for synonym matches."""
    if not required:
        return 0.5

    own = {c.lower() for c in agent.blueprint.capabilities}
    terms = _capability_terms(agent.blueprint.capabilities)

    credit = 0.0
    for tag in required:
        tag = tag.lower().replace("-", "_")
        if tag in own:
            credit += 1.0
        elif tag in terms or CAPABILITY_SYNONYMS.get(tag, frozenset()) & terms:
            credit += 0.5
    return min(credit / len(required), 1.0)


def specialization_fitness(agent: AgentInstance, description: str) -> float:
    """Keyword overlap between the task and the agent, plus domain boosts."""
    task_words = _tokens(description)
    if not task_words:
        return 0.0

    blueprint = agent.blueprint
    agent_words = (
        _tokens(blueprint.specialization)
        | _tokens(blueprint.description)
        | _capability_terms(blueprint.capabilities)
    )
    overlap = min(len(task_words & agent_words) / 3, 1.0)

    boosts = DOMAIN_BOOSTS.get(blueprint.specialization, ())
    boosted = any(
        word.startswith(keyword) for word in task_words for keyword in boosts
    )
    return min(0.7 * overlap + (0.3 if boosted else 0.0), 1.0)


def complexity_fitness(agent: AgentInstance, complexity: int) -> float:
    """Agent capacity for hard work, peaking at the reference complexity."""
    blueprint = agent.blueprint
    personality = blueprint.personality
    capacity = (
        AUTONOMY_CAPACITY[blueprint.autonomy_level]
        + min(len(blueprint.capabilities) / 5, 1.0)
        + (personality.analytical + personality.proactive + personality.creative) / 300
    ) / 3
    peak = 1 - abs(complexity - COMPLEXITY_REFERENCE) / 20
    return capacity * peak


def autonomy_risk_fitness(agent: AgentInstance, risk: RiskLevel) -> float:
    level = "high" if risk == "critical" else risk
    return AUTONOMY_RISK_FITNESS[agent.blueprint.autonomy_level][level]


def personality_fitness(agent: AgentInstance, urgency: Urgency, complexity: int) -> float:
    """Blend of the four traits; urgency favors proactive, complexity analytical."""
    personality = agent.blueprint.personality
    weights = {
        "proactive": 0.2 + 0.3 * URGENCY_FACTORS[urgency],
        "analytical": 0.2 + 0.3 * complexity / 10,
        "collaborative": 0.2,
        "creative": 0.15,
    }
    blended = sum(w * getattr(personality, trait) / 100 for trait, w in weights.items())
    return blended / sum(weights.values())


def working_style_fitness(agent: AgentInstance, complexity: int) -> float:
    style = agent.blueprint.working_style
    if style == "adaptive":
        return 0.8
    if complexity <= 3:
        return 1.0 if style == "sequential" else 0.5
    if complexity >= 7:
        return 1.0 if style == "parallel" else 0.5
    return 0.7


def context_scope_fitness(agent: AgentInstance, required: list[str]) -> float:
    """Wider scope scores higher only for whole-project work."""
    needs_project_view = any(
        tag.lower().replace("-", "_") in WHOLE_PROJECT_TAGS for tag in required
    )
    if not needs_project_view:
        return 0.5
    return SCOPE_BREADTH[agent.blueprint.context_scope]


def freshness_fitness(agent: AgentInstance, now: datetime) -> float:
    """Linear decay from 1 to 0 over FRESHNESS_DAYS since blueprint creation."""
    age_days = (now - agent.blueprint.created_at).total_seconds() / 86400
    return max(0.0, 1 - max(age_days, 0) / FRESHNESS_DAYS)
