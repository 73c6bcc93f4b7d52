"""Deployment request, record and result models."""

from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from erdeploy.ir.findings import ValidationFinding

EntityChoice = Literal["standard", "custom"]
DeploymentStatus = Literal["starting", "running", "completed", "failed", "cancelled"]
TERMINAL_STATUSES = frozenset({"completed", "failed", "cancelled"})

StepId = Literal[
    "starting",
    "parsing",
    "configuring",
    "publisher",
    "solution",
    "standard_entities",
    "custom_entities",
    "global_choices",
    "finalizing",
    "completed",
    "failed",
    "cancelled",
]

OperationType = Literal[
    "parse",
    "validation",
    "configuration",
    "publisher",
    "solution",
    "standard_entity",
    "entity",
    "attribute",
    "relationship",
    "choice_set",
    "fatal",
]


class ChoiceSetDefinition(BaseModel):
    """A global choice set to create on the platform."""

    name: str
    display_name: Optional[str] = None
    description: Optional[str] = None
    options: List[str] = Field(default_factory=list)


class DeploymentRequest(BaseModel):
    """Everything needed to deploy one diagram."""

    diagram_text: str
    solution_name: str = Field(min_length=1)
    solution_display_name: Optional[str] = None
    publisher_name: Optional[str] = None
    publisher_prefix: Optional[str] = None
    entity_choice: EntityChoice = "standard"
    selected_choice_sets: List[str] = Field(default_factory=list)
    custom_choice_definitions: List[ChoiceSetDefinition] = Field(default_factory=list)
    include_related_entities: bool = False
    enforce_structural_validation: bool = False


class OperationError(BaseModel):
    """A failed step or remote operation, kept in the final result."""

    type: OperationType
    error: str
    target: Optional[str] = None


class DeploymentCounts(BaseModel):
    """Running totals of what a deployment has done so far."""

    entities_created: int = 0
    attributes_created: int = 0
    relationships_created: int = 0
    standard_entities_integrated: int = 0
    choice_sets_created: int = 0
    choice_sets_attached: int = 0

    @property
    def global_choices_added(self) -> int:
        return self.choice_sets_attached


class DeploymentRecord(BaseModel):
    """State of one deployment as kept by the DeploymentStore."""

    deployment_id: str
    solution_name: str
    status: DeploymentStatus = "starting"
    step: StepId = "starting"
    message: str = ""
    percentage: float = 0.0
    started_at: datetime
    updated_at: datetime
    finished_at: Optional[float] = None  # store clock reading, drives eviction
    counts: DeploymentCounts = Field(default_factory=DeploymentCounts)
    errors: List[OperationError] = Field(default_factory=list)
    summary: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class DeploymentResult(BaseModel):
    """Final outcome returned by the orchestrator."""

    success: bool
    deployment_id: str
    status: DeploymentStatus
    entities_created: int = 0
    relationships_created: int = 0
    standard_entities_integrated: int = 0
    global_choices_added: int = 0
    global_choices_created: int = 0
    summary: str = ""
    errors: List[OperationError] = Field(default_factory=list)
    warnings: List[ValidationFinding] = Field(default_factory=list)
