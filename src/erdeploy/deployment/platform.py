"""Capability surface of the remote data platform, plus an in-memory implementation."""

import threading
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Set, Tuple
from pydantic import BaseModel, Field

from erdeploy.config.logging import get_logger
from erdeploy.errors import RemoteOperationError
from erdeploy.ir.schema import CardinalityType, FieldType

logger = get_logger(__name__)

# Columns the platform adds to every entity on its own
SYSTEM_ATTRIBUTES = frozenset({"createdon", "createdby", "modifiedon", "modifiedby"})


class PublisherSpec(BaseModel):
    unique_name: str
    display_name: str
    prefix: str


class PublisherInfo(BaseModel):
    unique_name: str
    prefix: str
    created: bool


class SolutionSpec(BaseModel):
    unique_name: str
    display_name: str
    publisher_unique_name: str


class SolutionInfo(BaseModel):
    unique_name: str
    created: bool


class AttributeSpec(BaseModel):
    """Column definition sent to the platform."""

    schema_name: str
    display_name: str
    type: FieldType = "text"
    description: Optional[str] = None
    is_unique: bool = False
    options: List[str] = Field(default_factory=list)


class EntitySpec(BaseModel):
    """Table definition sent to the platform; the primary key is created with it."""

    schema_name: str
    display_name: str
    description: Optional[str] = None
    primary_key: str


class RelationshipSpec(BaseModel):
    """Lookup relationship: ``referencing_entity`` gets a lookup to ``referenced_entity``."""

    schema_name: str
    referenced_entity: str
    referencing_entity: str
    lookup_name: str
    cardinality: CardinalityType
    label: str


class ChoiceSetSpec(BaseModel):
    name: str
    display_name: str
    description: Optional[str] = None
    options: List[str] = Field(default_factory=list)


class PlatformClient(Protocol):
    """Operations the deployment needs from the remote platform.

    Every method raises RemoteOperationError on failure.
    """

    def ensure_publisher(self, spec: PublisherSpec) -> PublisherInfo: ...

    def ensure_solution(self, spec: SolutionSpec) -> SolutionInfo: ...

    def create_entity(self, spec: EntitySpec, solution: str) -> str: ...

    def create_attribute(self, entity: str, spec: AttributeSpec, solution: str) -> str: ...

    def create_relationship(self, spec: RelationshipSpec, solution: str) -> str: ...

    def integrate_standard_entity(
        self, logical_name: str, solution: str, include_related: bool = False
    ) -> None: ...

    def create_choice_set(self, spec: ChoiceSetSpec, solution: str) -> str: ...

    def attach_choice_set(self, name: str, solution: str) -> None: ...


class InMemoryPlatform:
    """
    Thread-safe PlatformClient that keeps everything in dictionaries.

    Used for dry runs and tests. Failures can be injected per operation and
    target, either permanent (``failures``) or transient for a number of
    attempts (``transient_failures``). ``on_call`` is invoked with
    ``(operation, target)`` before each operation runs.
    """

    def __init__(
        self,
        failures: Optional[Dict[str, Iterable[str]]] = None,
        transient_failures: Optional[Dict[Tuple[str, str], int]] = None,
        existing_choice_sets: Iterable[str] = (),
        on_call: Optional[Callable[[str, str], None]] = None,
    ):
        self.failures: Dict[str, Set[str]] = {
            op: set(targets) for op, targets in (failures or {}).items()
        }
        self.transient_failures: Dict[Tuple[str, str], int] = dict(transient_failures or {})
        self.on_call = on_call
        self.publishers: Dict[str, PublisherSpec] = {}
        self.solutions: Dict[str, SolutionSpec] = {}
        self.entities: Dict[str, EntitySpec] = {}
        self.attributes: Dict[str, List[AttributeSpec]] = {}
        self.relationships: Dict[str, RelationshipSpec] = {}
        self.standard_entities: Set[str] = set()
        self.choice_sets: Dict[str, ChoiceSetSpec] = {
            name: ChoiceSetSpec(name=name, display_name=name) for name in existing_choice_sets
        }
        self.solution_components: Dict[str, List[str]] = {}
        self.calls: List[Tuple[str, str]] = []
        self._lock = threading.Lock()

    def _enter(self, operation: str, target: str) -> None:
        if self.on_call is not None:
            self.on_call(operation, target)
        with self._lock:
            self.calls.append((operation, target))
            remaining = self.transient_failures.get((operation, target), 0)
            if remaining > 0:
                self.transient_failures[(operation, target)] = remaining - 1
                raise RemoteOperationError(
                    operation, target, "service unavailable", transient=True, status_code=503
                )
        if target in self.failures.get(operation, set()):
            raise RemoteOperationError(operation, target, "rejected by platform", status_code=400)

    def _add_component(self, solution: str, component: str) -> None:
        with self._lock:
            if solution not in self.solutions:
                raise RemoteOperationError("add_component", component, f"unknown solution {solution}")
            self.solution_components.setdefault(solution, []).append(component)

    def ensure_publisher(self, spec: PublisherSpec) -> PublisherInfo:
        self._enter("ensure_publisher", spec.unique_name)
        with self._lock:
            created = spec.unique_name not in self.publishers
            existing = self.publishers.setdefault(spec.unique_name, spec)
        if created:
            logger.debug(f"Created publisher {spec.unique_name} with prefix {spec.prefix}")
        return PublisherInfo(unique_name=existing.unique_name, prefix=existing.prefix, created=created)

    def ensure_solution(self, spec: SolutionSpec) -> SolutionInfo:
        self._enter("ensure_solution", spec.unique_name)
        with self._lock:
            if spec.publisher_unique_name not in self.publishers:
                raise RemoteOperationError(
                    "ensure_solution", spec.unique_name, f"unknown publisher {spec.publisher_unique_name}"
                )
            created = spec.unique_name not in self.solutions
            self.solutions.setdefault(spec.unique_name, spec)
        if created:
            logger.debug(f"Created solution {spec.unique_name}")
        return SolutionInfo(unique_name=spec.unique_name, created=created)

    def create_entity(self, spec: EntitySpec, solution: str) -> str:
        self._enter("create_entity", spec.schema_name)
        with self._lock:
            if spec.schema_name in self.entities:
                raise RemoteOperationError("create_entity", spec.schema_name, "entity already exists")
            self.entities[spec.schema_name] = spec
            self.attributes[spec.schema_name] = []
        self._add_component(solution, spec.schema_name)
        return spec.schema_name

    def create_attribute(self, entity: str, spec: AttributeSpec, solution: str) -> str:
        target = f"{entity}.{spec.schema_name}"
        self._enter("create_attribute", target)
        with self._lock:
            if entity not in self.entities:
                raise RemoteOperationError("create_attribute", target, f"unknown entity {entity}")
            self.attributes[entity].append(spec)
        return spec.schema_name

    def create_relationship(self, spec: RelationshipSpec, solution: str) -> str:
        self._enter("create_relationship", spec.schema_name)
        with self._lock:
            for endpoint in (spec.referenced_entity, spec.referencing_entity):
                if endpoint not in self.entities and endpoint not in self.standard_entities:
                    raise RemoteOperationError(
                        "create_relationship", spec.schema_name, f"unknown entity {endpoint}"
                    )
            if spec.schema_name in self.relationships:
                raise RemoteOperationError(
                    "create_relationship", spec.schema_name, "relationship already exists"
                )
            self.relationships[spec.schema_name] = spec
        self._add_component(solution, spec.schema_name)
        return spec.schema_name

    def integrate_standard_entity(
        self, logical_name: str, solution: str, include_related: bool = False
    ) -> None:
        self._enter("integrate_standard_entity", logical_name)
        with self._lock:
            self.standard_entities.add(logical_name)
        self._add_component(solution, logical_name)

    def create_choice_set(self, spec: ChoiceSetSpec, solution: str) -> str:
        self._enter("create_choice_set", spec.name)
        with self._lock:
            if spec.name in self.choice_sets:
                raise RemoteOperationError("create_choice_set", spec.name, "choice set already exists")
            self.choice_sets[spec.name] = spec
        return spec.name

    def attach_choice_set(self, name: str, solution: str) -> None:
        self._enter("attach_choice_set", name)
        with self._lock:
            if name not in self.choice_sets:
                raise RemoteOperationError("attach_choice_set", name, "choice set not found")
        self._add_component(solution, name)
