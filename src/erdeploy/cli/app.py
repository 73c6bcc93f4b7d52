"""Typer CLI application."""

from pathlib import Path
from typing import List, Optional

import typer

from erdeploy.classification import classify_entities
from erdeploy.config.logging import setup_logging
from erdeploy.config.settings import get_settings
from erdeploy.deployment import (
    CallbackSink,
    ChoiceSetDefinition,
    DeploymentOrchestrator,
    DeploymentRequest,
    InMemoryPlatform,
    ProgressEvent,
)
from erdeploy.ir.findings import ValidationFinding
from erdeploy.parsing import parse_diagram
from erdeploy.utils.ir_io import save_parse_result
from erdeploy.validation import apply_fixes, validate_diagram

app = typer.Typer(help="erdeploy: Mermaid ER diagrams to platform schemas")

_SEVERITY_MARKS = {"error": "✗", "warning": "!", "info": "i"}


def _read_diagram(diagram_file: Path):
    if not diagram_file.exists():
        typer.echo(f"Diagram file not found: {diagram_file}", err=True)
        raise typer.Exit(1)
    result = parse_diagram(diagram_file.read_text(encoding="utf-8"))
    if not result.success:
        typer.echo("✗ Diagram could not be parsed:", err=True)
        for error in result.errors:
            typer.echo(f"  {error}", err=True)
        raise typer.Exit(1)
    return result


def _echo_finding(finding: ValidationFinding) -> None:
    typer.echo(f"  [{_SEVERITY_MARKS[finding.severity]}] {finding.type}: {finding.message}")
    if finding.suggestion:
        typer.echo(f"      → {finding.suggestion}")


@app.command()
def parse(
    diagram_file: Path,
    out_json: Optional[Path] = typer.Option(None, "--out", help="Write the parse result as JSON"),
    corrected: Optional[Path] = typer.Option(None, "--corrected", help="Write the corrected diagram"),
):
    """
    Parse a diagram and report entities, relationships and rewrites.
    """
    setup_logging()
    result = _read_diagram(diagram_file)

    typer.echo(f"✓ Parsed {len(result.entities)} entities, {len(result.relationships)} relationships")
    for finding in result.warnings:
        _echo_finding(finding)

    if out_json:
        save_parse_result(result, out_json)
        typer.echo(f"Parse result written to {out_json}")
    if corrected:
        corrected.parent.mkdir(parents=True, exist_ok=True)
        corrected.write_text(result.corrected_text or "", encoding="utf-8")
        typer.echo(f"Corrected diagram written to {corrected}")


@app.command()
def validate(
    diagram_file: Path,
    fix: Optional[Path] = typer.Option(None, "--fix", help="Apply auto-fixes and write the diagram here"),
):
    """
    Validate a diagram. Exits with code 1 when blocking problems are found.
    """
    setup_logging()
    result = _read_diagram(diagram_file)
    classification = classify_entities(result.entities)
    report = validate_diagram(result, classification.entities)

    for error in report.errors:
        typer.echo(f"  [✗] {error}")
    for finding in report.findings:
        _echo_finding(finding)

    if fix:
        outcome = apply_fixes(classification.entities, result.relationships, report.findings)
        fix.parent.mkdir(parents=True, exist_ok=True)
        fix.write_text(outcome.corrected_text, encoding="utf-8")
        typer.echo(f"Applied {len(outcome.applied)} fix(es); diagram written to {fix}")

    if not report.is_valid:
        typer.echo("✗ Validation failed")
        raise typer.Exit(1)
    typer.echo(f"✓ Validation passed ({len(report.findings)} finding(s))")


@app.command()
def classify(diagram_file: Path):
    """
    Show which entities match standard platform entities.
    """
    setup_logging()
    result = _read_diagram(diagram_file)
    classification = classify_entities(result.entities)

    for match in classification.matches:
        typer.echo(
            f"  {match.entity.name} → {match.logical_name} "
            f"({match.match_type}, confidence {match.confidence:.2f})"
        )
    for entity in classification.custom_entities:
        typer.echo(f"  {entity.name} → custom")


@app.command()
def simulate(
    diagram_file: Path,
    solution: str = typer.Option(..., "--solution", help="Solution unique name"),
    publisher: Optional[str] = typer.Option(None, "--publisher", help="Publisher display name"),
    prefix: Optional[str] = typer.Option(None, "--prefix", help="Publisher customization prefix"),
    custom_only: bool = typer.Option(False, "--custom-only", help="Create every entity as custom"),
    choice_set: List[str] = typer.Option([], "--choice-set", help="Existing global choice set to add"),
):
    """
    Run a full deployment against an in-memory platform.
    """
    setup_logging()
    if not diagram_file.exists():
        typer.echo(f"Diagram file not found: {diagram_file}", err=True)
        raise typer.Exit(1)

    settings = get_settings().model_copy(
        update={
            "platform_url": "memory://simulation",
            "tenant_id": "simulation",
            "client_id": "simulation",
            "client_secret": "simulation",
        }
    )
    platform = InMemoryPlatform(existing_choice_sets=choice_set)
    orchestrator = DeploymentOrchestrator(lambda target: platform, settings=settings)

    def show(event: ProgressEvent) -> None:
        typer.echo(f"[{event.percentage:5.1f}%] {event.step}: {event.message}")

    text = diagram_file.read_text(encoding="utf-8")
    choice_definitions = {}
    for entity in parse_diagram(text).entities:
        for attribute in entity.attributes:
            if attribute.type == "choice" and attribute.choice_options:
                choice_definitions.setdefault(
                    attribute.name,
                    ChoiceSetDefinition(name=attribute.name, options=attribute.choice_options),
                )

    request = DeploymentRequest(
        diagram_text=text,
        solution_name=solution,
        publisher_name=publisher,
        publisher_prefix=prefix,
        entity_choice="custom" if custom_only else "standard",
        selected_choice_sets=choice_set,
        custom_choice_definitions=list(choice_definitions.values()),
    )
    result = orchestrator.deploy(request, CallbackSink(show))

    for error in result.errors:
        typer.echo(f"  [✗] {error.type} {error.target or ''}: {error.error}")
    if not result.success:
        typer.echo(f"✗ {result.summary}")
        raise typer.Exit(1)
    typer.echo(f"✓ {result.summary}")


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
