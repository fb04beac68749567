"""Agent blueprints, runtime instances and the agent pool.

A blueprint is the immutable description of a specialized agent. An
instance binds a blueprint to transient runtime state (idle or busy, task
tallies). The pool is the read-only provider the selector scores against.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Protocol

AutonomyLevel = Literal["supervised", "semi-autonomous", "fully-autonomous"]
ContextScope = Literal["file", "directory", "project", "workspace"]
WorkingStyle = Literal["sequential", "parallel", "adaptive"]
AgentStatus = Literal["active", "idle"]

AUTONOMY_LEVELS: tuple[AutonomyLevel, ...] = (
    "supervised",
    "semi-autonomous",
    "fully-autonomous",
)
CONTEXT_SCOPES: tuple[ContextScope, ...] = ("file", "directory", "project", "workspace")
WORKING_STYLES: tuple[WorkingStyle, ...] = ("sequential", "parallel", "adaptive")


@dataclass(frozen=True)
class Personality:
    """Behavioral traits, each on a 0-100 scale."""

    proactive: int
    collaborative: int
    analytical: int
    creative: int

    def __post_init__(self) -> None:
        for name in ("proactive", "collaborative", "analytical", "creative"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"Personality trait {name} must be in [0, 100], got {value}")


@dataclass(frozen=True)
class AgentBlueprint:
    """Immutable template describing an agent's specialization and behavior."""

    id: str
    name: str
    description: str
    specialization: str
    system_prompt: str
    capabilities: tuple[str, ...]
    required_tools: tuple[str, ...]
    personality: Personality
    autonomy_level: AutonomyLevel = "semi-autonomous"
    context_scope: ContextScope = "project"
    working_style: WorkingStyle = "sequential"
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        if self.autonomy_level not in AUTONOMY_LEVELS:
            raise ValueError(f"Unknown autonomy level: {self.autonomy_level}")
        if self.context_scope not in CONTEXT_SCOPES:
            raise ValueError(f"Unknown context scope: {self.context_scope}")
        if self.working_style not in WORKING_STYLES:
            raise ValueError(f"Unknown working style: {self.working_style}")


@dataclass
class AgentInstance:
    """A running binding of a blueprint.

    Attributes:
        blueprint: The agent's template
        status: "active" while working on a task, "idle" otherwise
        tasks_completed: Tasks finished successfully
        tasks_failed: Tasks that ended in failure
    """

    blueprint: AgentBlueprint
    status: AgentStatus = "idle"
    tasks_completed: int = 0
    tasks_failed: int = 0

    @property
    def id(self) -> str:
        return self.blueprint.id

    @property
    def name(self) -> str:
        return self.blueprint.name

    @property
    def is_idle(self) -> bool:
        return self.status == "idle"

    @property
    def success_rate(self) -> float:
        """Share of finished tasks that succeeded (1.0 with no history)."""
        total = self.tasks_completed + self.tasks_failed
        if total == 0:
            return 1.0
        return self.tasks_completed / total


class AgentPoolProvider(Protocol):
    """Read-only enumeration of instantiated agents."""

    def agents(self) -> list[AgentInstance]: ...


class AgentPool:
    """In-memory agent pool, in registration order.

    Usage:
        pool = AgentPool.default()
        for agent in pool.agents():
            ...
    """

    def __init__(self, instances: list[AgentInstance] | None = None):
        self._instances = list(instances or [])

    @classmethod
    def from_blueprints(cls, blueprints: list[AgentBlueprint]) -> "AgentPool":
        return cls([AgentInstance(blueprint=bp) for bp in blueprints])

    @classmethod
    def default(cls) -> "AgentPool":
        """Pool with one idle instance of each default blueprint."""
        return cls.from_blueprints(default_blueprints())

    def agents(self) -> list[AgentInstance]:
        return list(self._instances)

    def get(self, agent_id: str) -> AgentInstance | None:
        return next((a for a in self._instances if a.id == agent_id), None)

    def add(self, instance: AgentInstance) -> None:
        self._instances.append(instance)


def default_blueprints() -> list[AgentBlueprint]:
    """The five built-in agent profiles."""
    return [
        AgentBlueprint(
            id="researcher",
            name="researcher",
            description="Research and analysis specialist",
            specialization="Research and Data Analysis",
            system_prompt=(
                "You are a research specialist focused on gathering, analyzing, and "
                "synthesizing information. You excel at finding relevant data, "
                "evaluating sources, and presenting findings clearly."
            ),
            capabilities=("web_search", "data_analysis", "report_writing", "source_evaluation"),
            required_tools=("web_search", "read_file", "write_file"),
            personality=Personality(proactive=80, collaborative=70, analytical=95, creative=60),
            autonomy_level="fully-autonomous",
            context_scope="workspace",
            working_style="sequential",
        ),
        AgentBlueprint(
            id="coder",
            name="coder",
            description="Software development and coding expert",
            specialization="Software Development",
            system_prompt=(
                "You are a software development expert with deep knowledge of "
                "programming languages, best practices, and software architecture. "
                "You excel at writing clean, efficient, and maintainable code."
            ),
            capabilities=("code_generation", "code_review", "refactoring", "testing", "debugging"),
            required_tools=("read_file", "write_file", "run_command", "git"),
            personality=Personality(proactive=85, collaborative=75, analytical=90, creative=80),
            autonomy_level="fully-autonomous",
            context_scope="project",
            working_style="adaptive",
        ),
        AgentBlueprint(
            id="planner",
            name="planner",
            description="Strategic planning and project management",
            specialization="Strategic Planning",
            system_prompt=(
                "You are a strategic planner and project manager. You excel at "
                "breaking down complex projects into manageable tasks, creating "
                "timelines, and coordinating resources."
            ),
            capabilities=(
                "project_planning",
                "task_breakdown",
                "timeline_creation",
                "resource_coordination",
            ),
            required_tools=("read_file", "write_file"),
            personality=Personality(proactive=90, collaborative=85, analytical=85, creative=70),
            autonomy_level="semi-autonomous",
            context_scope="project",
            working_style="sequential",
        ),
        AgentBlueprint(
            id="tester",
            name="tester",
            description="Quality assurance and testing specialist",
            specialization="Quality Assurance",
            system_prompt=(
                "You are a quality assurance specialist focused on testing, "
                "validation, and ensuring software quality. You excel at creating "
                "test plans, executing tests, and reporting issues."
            ),
            capabilities=("test_planning", "test_execution", "bug_reporting", "quality_assurance"),
            required_tools=("read_file", "write_file", "run_command"),
            personality=Personality(proactive=75, collaborative=80, analytical=90, creative=65),
            autonomy_level="semi-autonomous",
            context_scope="project",
            working_style="sequential",
        ),
        AgentBlueprint(
            id="devops",
            name="devops",
            description="DevOps and infrastructure specialist",
            specialization="DevOps and Infrastructure",
            system_prompt=(
                "You are a DevOps specialist focused on automation, infrastructure, "
                "and deployment. You excel at CI/CD pipelines, containerization, and "
                "infrastructure as code."
            ),
            capabilities=(
                "ci_cd",
                "containerization",
                "infrastructure_as_code",
                "monitoring",
                "automation",
            ),
            required_tools=("run_command", "read_file", "write_file", "docker"),
            personality=Personality(proactive=85, collaborative=80, analytical=85, creative=75),
            autonomy_level="fully-autonomous",
            context_scope="project",
            working_style="parallel",
        ),
    ]
