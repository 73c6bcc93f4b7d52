"""Orchestrates the deployment of a parsed diagram to the remote platform."""

import re
import threading
import time
import uuid
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple, TypeVar

from erdeploy.classification import ClassificationMatch, EntityClassifier, StandardEntityRegistry
from erdeploy.config.logging import get_logger
from erdeploy.config.settings import Settings, TargetConfig, get_settings, resolve_target
from erdeploy.errors import ConfigurationError, RemoteOperationError
from erdeploy.ir.findings import ValidationFinding
from erdeploy.ir.schema import Entity, Relationship, format_display_name
from erdeploy.parsing import DiagramParser
from erdeploy.utils.retry import retry_with_backoff
from erdeploy.validation import validate_entity_structure, validate_relationships
from .models import (
    DeploymentCounts,
    DeploymentRecord,
    DeploymentRequest,
    DeploymentResult,
    DeploymentStatus,
    OperationError,
    OperationType,
    StepId,
)
from .platform import (
    AttributeSpec,
    ChoiceSetSpec,
    EntitySpec,
    PlatformClient,
    PublisherSpec,
    RelationshipSpec,
    SYSTEM_ATTRIBUTES,
    SolutionSpec,
)
from .progress import ProgressSink, ProgressTracker
from .store import DeploymentStore

logger = get_logger(__name__)

T = TypeVar("T")

ClientFactory = Callable[[TargetConfig], PlatformClient]


class _Cancelled(Exception):
    """Raised at a checkpoint once the deployment has been cancelled."""


class _StepFailed(Exception):
    def __init__(self, step: StepId, message: str):
        self.step = step
        super().__init__(message)


def new_deployment_id() -> str:
    return f"deploy_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _slug(name: str) -> str:
    return re.sub(r"\W+", "_", name.lower()).strip("_")


@dataclass
class DeploymentContext:
    """Mutable state of one running deployment, shared with worker threads."""

    deployment_id: str
    request: DeploymentRequest
    tracker: ProgressTracker
    prefix: str = ""
    solution: str = ""
    client: Optional[PlatformClient] = None
    counts: DeploymentCounts = field(default_factory=DeploymentCounts)
    errors: List[OperationError] = field(default_factory=list)
    warnings: List[ValidationFinding] = field(default_factory=list)
    choice_sets_existing: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock)

    def schema_name(self, entity_name: str) -> str:
        return f"{self.prefix}_{entity_name.lower()}"

    def bump(self, counter: str) -> None:
        with self.lock:
            setattr(self.counts, counter, getattr(self.counts, counter) + 1)


class DeploymentOrchestrator:
    """
    Runs deployments through their fixed sequence of steps.

    Each deployment gets its own context, so several can run at once on the
    same orchestrator. Failures of single entities, attributes, relationships
    and choice sets are collected and the deployment carries on. Parse,
    configuration, publisher and solution failures fail it, as do errors
    raised outside those operations.
    """

    def __init__(
        self,
        client_factory: ClientFactory,
        settings: Optional[Settings] = None,
        registry: Optional[StandardEntityRegistry] = None,
        store: Optional[DeploymentStore] = None,
        parser: Optional[DiagramParser] = None,
        max_workers: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the orchestrator.

        Args:
            client_factory: Builds a PlatformClient from the resolved target configuration
            settings: Settings to use (default: global settings)
            registry: Standard entity registry for classification
            store: Deployment store (default: a new store using the configured retention)
            parser: Diagram parser
            max_workers: Bound on concurrent remote operations per deployment
            sleep: Sleep function used between retries
        """
        self.client_factory = client_factory
        self.settings = settings or get_settings()
        self.classifier = EntityClassifier(registry)
        self.store = store or DeploymentStore(self.settings.deployment_retention_seconds)
        self.parser = parser or DiagramParser()
        self.max_workers = max(1, max_workers or self.settings.max_concurrent_operations)
        self.sleep = sleep
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    # Public API

    def deploy(
        self, request: DeploymentRequest, progress: Optional[ProgressSink] = None
    ) -> DeploymentResult:
        """
        Run a deployment to completion in the calling thread.

        Args:
            request: What to deploy
            progress: Optional sink for progress events

        Returns:
            DeploymentResult with counts, summary, errors and findings
        """
        deployment_id = self._register(request)
        return self._execute(deployment_id, request, progress)

    def submit(
        self, request: DeploymentRequest, progress: Optional[ProgressSink] = None
    ) -> Tuple[str, "Future[DeploymentResult]"]:
        """Start a deployment in the background and return its id and future."""
        deployment_id = self._register(request)
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(thread_name_prefix="erdeploy-deploy")
            future = self._executor.submit(self._execute, deployment_id, request, progress)
        return deployment_id, future

    def cancel(self, deployment_id: str) -> DeploymentRecord:
        """Cancel a running deployment; it stops at its next checkpoint."""
        return self.store.cancel(deployment_id)

    def status(self, deployment_id: str) -> DeploymentRecord:
        """Snapshot of a deployment; raises DeploymentNotFoundError once expired."""
        return self.store.get(deployment_id)

    def shutdown(self, wait: bool = True) -> None:
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=wait)
                self._executor = None

    # Pipeline

    def _register(self, request: DeploymentRequest) -> str:
        self.store.sweep()
        deployment_id = new_deployment_id()
        self.store.create(deployment_id, request.solution_name)
        return deployment_id

    def _execute(
        self,
        deployment_id: str,
        request: DeploymentRequest,
        progress: Optional[ProgressSink],
    ) -> DeploymentResult:
        ctx = DeploymentContext(
            deployment_id=deployment_id,
            request=request,
            tracker=ProgressTracker(deployment_id, progress),
        )
        logger.info(f"Starting deployment {deployment_id} for solution {request.solution_name}")

        status: DeploymentStatus = "completed"
        summary = ""
        failure = ""
        try:
            ctx.tracker.start("starting", "Starting deployment")
            summary = self._run(ctx)
        except _Cancelled:
            status = "cancelled"
            logger.info(f"Deployment {deployment_id} stopped after cancellation")
        except _StepFailed as e:
            status = "failed"
            failure = str(e)
            ctx.tracker.fail(e.step, failure)
            logger.warning(f"Deployment {deployment_id} failed at {e.step}: {e}")
        except Exception as e:
            status = "failed"
            failure = str(e)
            self._record_error(ctx, "fatal", failure)
            logger.error(f"Deployment {deployment_id} failed unexpectedly: {e}", exc_info=True)

        message = {
            "completed": summary,
            "failed": f"Deployment failed: {failure}",
            "cancelled": "Deployment cancelled",
        }[status]
        record = self.store.finish(
            deployment_id,
            status,
            message,
            summary=summary or None,
            counts=ctx.counts.model_copy(),
        )
        status = record.status
        if status == "cancelled":
            message = "Deployment cancelled"
        ctx.tracker.finish(status, message, errors=len(ctx.errors))

        return DeploymentResult(
            success=status == "completed",
            deployment_id=deployment_id,
            status=status,
            entities_created=ctx.counts.entities_created,
            relationships_created=ctx.counts.relationships_created,
            standard_entities_integrated=ctx.counts.standard_entities_integrated,
            global_choices_added=ctx.counts.global_choices_added,
            global_choices_created=ctx.counts.choice_sets_created,
            summary=summary if status == "completed" else message,
            errors=list(ctx.errors),
            warnings=list(ctx.warnings),
        )

    def _run(self, ctx: DeploymentContext) -> str:
        request = ctx.request

        self._begin(ctx, "parsing", "Parsing and validating diagram")
        entities, relationships, matches = self._parse(ctx)
        ctx.tracker.complete("parsing", f"Parsed {len(entities)} entities", warnings=len(ctx.warnings))

        self._begin(ctx, "configuring", "Resolving target platform configuration")
        try:
            target = resolve_target(self.settings)
        except ConfigurationError as e:
            self._record_error(ctx, "configuration", str(e))
            raise _StepFailed("configuring", str(e)) from e
        ctx.client = self.client_factory(target)
        ctx.prefix = request.publisher_prefix or self.settings.default_publisher_prefix
        ctx.tracker.complete("configuring", f"Connected to {target.platform_url}")

        self._begin(ctx, "publisher", "Ensuring publisher")
        publisher_name = request.publisher_name or self.settings.default_publisher_name
        publisher_spec = PublisherSpec(
            unique_name=re.sub(r"\s+", "", publisher_name).lower(),
            display_name=publisher_name,
            prefix=ctx.prefix,
        )
        publisher = self._fatal_call(
            ctx, "publisher", lambda: ctx.client.ensure_publisher(publisher_spec)
        )
        ctx.tracker.complete("publisher", f"Publisher {publisher.unique_name} ready", created=publisher.created)

        self._begin(ctx, "solution", f"Ensuring solution {request.solution_name}")
        solution_spec = SolutionSpec(
            unique_name=request.solution_name,
            display_name=request.solution_display_name or request.solution_name,
            publisher_unique_name=publisher.unique_name,
        )
        solution = self._fatal_call(ctx, "solution", lambda: ctx.client.ensure_solution(solution_spec))
        ctx.solution = solution.unique_name
        ctx.tracker.complete("solution", f"Solution {solution.unique_name} ready", created=solution.created)

        if request.entity_choice == "standard":
            standard = matches
            standard_names = {m.entity.name for m in matches}
            custom = [e for e in entities if e.name not in standard_names]
        else:
            standard = []
            custom = list(entities)

        if standard:
            self._begin(ctx, "standard_entities", f"Adding {len(standard)} standard entities")
            self._integrate_standard(ctx, standard)
            ctx.tracker.complete(
                "standard_entities",
                f"Added {ctx.counts.standard_entities_integrated} standard entities",
            )
        else:
            ctx.tracker.skip("standard_entities", "No standard entities to add")

        if custom:
            self._begin(ctx, "custom_entities", f"Creating {len(custom)} custom entities")
            self._deploy_custom(ctx, custom, relationships)
            ctx.tracker.complete(
                "custom_entities",
                f"Created {ctx.counts.entities_created} entities and "
                f"{ctx.counts.relationships_created} relationships",
            )
        else:
            ctx.tracker.skip("custom_entities", "No custom entities to create")

        if request.selected_choice_sets or request.custom_choice_definitions:
            self._begin(ctx, "global_choices", "Adding global choice sets")
            self._process_choice_sets(ctx)
            ctx.tracker.complete(
                "global_choices", f"Added {ctx.counts.global_choices_added} global choice sets"
            )
        else:
            ctx.tracker.skip("global_choices", "No global choice sets requested")

        self._begin(ctx, "finalizing", "Finalizing deployment")
        summary = self._summary(ctx)
        ctx.tracker.complete("finalizing", summary)
        logger.info(f"Deployment {ctx.deployment_id} completed: {summary}")
        return summary

    def _parse(
        self, ctx: DeploymentContext
    ) -> Tuple[List[Entity], List[Relationship], List[ClassificationMatch]]:
        result = self.parser.parse(ctx.request.diagram_text)
        if not result.success:
            for error in result.errors:
                self._record_error(ctx, "parse", error)
            raise _StepFailed("parsing", "Diagram parsing failed")
        if not result.entities:
            self._record_error(ctx, "parse", "Diagram defines no entities")
            raise _StepFailed("parsing", "Diagram defines no entities")

        classification = self.classifier.classify(result.entities)
        structural = validate_entity_structure(classification.entities, result.relationships)
        relational = validate_relationships(classification.entities, result.relationships)
        ctx.warnings = result.warnings + structural.warnings + relational.warnings

        if ctx.request.enforce_structural_validation and not structural.is_valid:
            for error in structural.errors:
                self._record_error(ctx, "validation", error)
            for finding in structural.warnings:
                if finding.is_blocking:
                    self._record_error(ctx, "validation", finding.message, finding.entity)
            raise _StepFailed("parsing", "Diagram failed structural validation")

        return classification.entities, result.relationships, classification.matches

    def _integrate_standard(self, ctx: DeploymentContext, matches: List[ClassificationMatch]) -> None:
        for match in matches:
            self._checkpoint(ctx)
            try:
                self._call(
                    f"integrate_standard_entity {match.logical_name}",
                    lambda: ctx.client.integrate_standard_entity(
                        match.logical_name, ctx.solution, ctx.request.include_related_entities
                    ),
                )
            except Exception as e:
                self._operation_failed(ctx, "standard_entity", e, match.entity.name)
                continue
            ctx.bump("standard_entities_integrated")

    def _deploy_custom(
        self,
        ctx: DeploymentContext,
        entities: List[Entity],
        relationships: List[Relationship],
    ) -> None:
        """
        Create custom entities concurrently, then each relationship as soon as
        both of its endpoints exist.

        Only relationships between two custom entities are created here.
        """
        custom_names = {e.name for e in entities}
        pending = [
            rel
            for rel in relationships
            if rel.from_entity in custom_names and rel.to_entity in custom_names
        ]
        skipped = len(relationships) - len(pending)
        if skipped:
            logger.info(f"{skipped} relationship(s) involve standard entities and are left to the platform")

        created: Set[str] = set()
        cancelled = False
        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="erdeploy-op"
        ) as pool:
            futures: Dict[Future, Tuple[str, str]] = {}
            for entity in entities:
                if self.store.is_cancelled(ctx.deployment_id):
                    cancelled = True
                    break
                futures[pool.submit(self._create_entity, ctx, entity)] = ("entity", entity.name)

            while futures:
                done, _ = wait(futures, return_when=FIRST_COMPLETED)
                for future in done:
                    kind, name = futures.pop(future)
                    ok = future.result()
                    if ok is None:
                        cancelled = True
                    if kind != "entity" or not ok:
                        continue
                    created.add(name)
                    for rel in [r for r in pending if {r.from_entity, r.to_entity} <= created]:
                        pending.remove(rel)
                        if self.store.is_cancelled(ctx.deployment_id):
                            cancelled = True
                            continue
                        futures[pool.submit(self._create_relationship, ctx, rel)] = (
                            "relationship",
                            rel.name,
                        )

        if cancelled:
            raise _Cancelled()
        for rel in pending:
            missing = [n for n in (rel.from_entity, rel.to_entity) if n not in created]
            self._record_error(
                ctx,
                "relationship",
                f"Skipped: endpoint {', '.join(missing)} was not created",
                f"{rel.from_entity}->{rel.to_entity}",
            )

    def _create_entity(self, ctx: DeploymentContext, entity: Entity) -> Optional[bool]:
        """Create one entity and its attributes; None means cancelled before starting."""
        if self.store.is_cancelled(ctx.deployment_id):
            return None
        schema = ctx.schema_name(entity.name)
        keys = entity.primary_keys()
        spec = EntitySpec(
            schema_name=schema,
            display_name=entity.display_name,
            description=f"Created from diagram entity {entity.name}",
            primary_key=f"{ctx.prefix}_{keys[0].name.lower()}" if keys else f"{schema}id",
        )
        try:
            self._call(f"create_entity {schema}", lambda: ctx.client.create_entity(spec, ctx.solution))
        except Exception as e:
            self._operation_failed(ctx, "entity", e, entity.name)
            return False
        ctx.bump("entities_created")
        ctx.tracker.start("custom_entities", f"Created entity {entity.name}", entity=entity.name)

        # Primary keys come with the entity and lookups with the relationships
        for attribute in entity.attributes:
            if attribute.is_primary_key or attribute.is_foreign_key:
                continue
            if attribute.name.lower() in SYSTEM_ATTRIBUTES:
                logger.debug(f"Skipping {entity.name}.{attribute.name}: provided by the platform")
                continue
            attribute_spec = AttributeSpec(
                schema_name=f"{ctx.prefix}_{attribute.name.lower()}",
                display_name=attribute.display_name,
                type=attribute.type,
                description=attribute.description,
                is_unique=attribute.is_unique,
                options=attribute.choice_options,
            )
            try:
                self._call(
                    f"create_attribute {schema}.{attribute_spec.schema_name}",
                    lambda: ctx.client.create_attribute(schema, attribute_spec, ctx.solution),
                )
            except Exception as e:
                self._operation_failed(ctx, "attribute", e, f"{entity.name}.{attribute.name}")
                continue
            ctx.bump("attributes_created")
        return True

    def _create_relationship(self, ctx: DeploymentContext, rel: Relationship) -> Optional[bool]:
        if self.store.is_cancelled(ctx.deployment_id):
            return None
        if rel.cardinality.type == "many-to-one":
            referenced, referencing = rel.to_entity, rel.from_entity
        else:
            referenced, referencing = rel.from_entity, rel.to_entity
        spec = RelationshipSpec(
            schema_name=f"{ctx.prefix}_{referenced.lower()}_{referencing.lower()}_{_slug(rel.name)}",
            referenced_entity=ctx.schema_name(referenced),
            referencing_entity=ctx.schema_name(referencing),
            lookup_name=f"{ctx.prefix}_{referenced.lower()}id",
            cardinality=rel.cardinality.type,
            label=rel.name,
        )
        try:
            self._call(
                f"create_relationship {spec.schema_name}",
                lambda: ctx.client.create_relationship(spec, ctx.solution),
            )
        except Exception as e:
            self._operation_failed(ctx, "relationship", e, f"{rel.from_entity}->{rel.to_entity}")
            return False
        ctx.bump("relationships_created")
        return True

    def _process_choice_sets(self, ctx: DeploymentContext) -> None:
        for name in ctx.request.selected_choice_sets:
            self._checkpoint(ctx)
            try:
                self._call(
                    f"attach_choice_set {name}",
                    lambda: ctx.client.attach_choice_set(name, ctx.solution),
                )
            except Exception as e:
                self._operation_failed(ctx, "choice_set", e, name)
                continue
            ctx.bump("choice_sets_attached")
            ctx.choice_sets_existing += 1

        for definition in ctx.request.custom_choice_definitions:
            self._checkpoint(ctx)
            spec = ChoiceSetSpec(
                name=f"{ctx.prefix}_{_slug(definition.name)}",
                display_name=definition.display_name or format_display_name(definition.name),
                description=definition.description,
                options=definition.options,
            )
            try:
                self._call(
                    f"create_choice_set {spec.name}",
                    lambda: ctx.client.create_choice_set(spec, ctx.solution),
                )
                ctx.bump("choice_sets_created")
                self._call(
                    f"attach_choice_set {spec.name}",
                    lambda: ctx.client.attach_choice_set(spec.name, ctx.solution),
                )
            except Exception as e:
                self._operation_failed(ctx, "choice_set", e, definition.name)
                continue
            ctx.bump("choice_sets_attached")

    @staticmethod
    def _summary(ctx: DeploymentContext) -> str:
        counts = ctx.counts
        parts = []
        if counts.standard_entities_integrated:
            parts.append(f"{counts.standard_entities_integrated} standard entities added")
        if counts.entities_created:
            parts.append(f"{counts.entities_created} custom entities created")
        if counts.relationships_created:
            parts.append(f"{counts.relationships_created} relationships created")
        if counts.global_choices_added:
            parts.append(
                f"{counts.global_choices_added} global choices added "
                f"({counts.choice_sets_created} new, {ctx.choice_sets_existing} existing)"
            )
        summary = ", ".join(parts) if parts else "Deployment completed successfully"
        if ctx.errors:
            summary += f"; {len(ctx.errors)} operation(s) failed"
        return summary

    # Helpers

    def _begin(self, ctx: DeploymentContext, step: StepId, message: str) -> None:
        self._checkpoint(ctx)
        self.store.update(
            ctx.deployment_id,
            status="running",
            step=step,
            message=message,
            percentage=ctx.tracker.percentage,
            counts=ctx.counts.model_copy(),
        )
        ctx.tracker.start(step, message)

    def _checkpoint(self, ctx: DeploymentContext) -> None:
        if self.store.is_cancelled(ctx.deployment_id):
            raise _Cancelled()

    def _call(self, operation: str, func: Callable[[], T]) -> T:
        return retry_with_backoff(
            func,
            max_retries=self.settings.remote_max_retries,
            base_delay=self.settings.remote_retry_delay,
            operation_name=operation,
            sleep=self.sleep,
        )

    def _fatal_call(self, ctx: DeploymentContext, step: OperationType, func: Callable[[], T]) -> T:
        try:
            return self._call(f"ensure_{step}", func)
        except RemoteOperationError as e:
            self._record_error(ctx, step, str(e))
            raise _StepFailed(step, str(e)) from e

    def _record_error(
        self,
        ctx: DeploymentContext,
        kind: OperationType,
        message: str,
        target: Optional[str] = None,
    ) -> None:
        error = OperationError(type=kind, error=message, target=target)
        with ctx.lock:
            ctx.errors.append(error)
        self.store.add_error(ctx.deployment_id, error)

    def _operation_failed(
        self,
        ctx: DeploymentContext,
        kind: OperationType,
        error: Exception,
        target: str,
    ) -> None:
        """Record a failed per-item operation; the deployment carries on."""
        if isinstance(error, RemoteOperationError):
            message = str(error)
            logger.warning(f"Deployment {ctx.deployment_id}: {message}")
        else:
            message = f"{type(error).__name__}: {error}"
            logger.error(
                f"Deployment {ctx.deployment_id}: {kind} '{target}' failed unexpectedly: {message}",
                exc_info=True,
            )
        self._record_error(ctx, kind, message, target)
