"""controlcheck - AI-assisted compliance analysis of a framework's controls."""

from __future__ import annotations

import asyncio
import contextlib
import json
import signal
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape

from .. import __version__
from ..errors import ControlCheckError
from ..models.batch import BatchResult, ProgressEvent
from ..models.control import BatchOptions, BatchRequest

console = Console()

EXIT_INVALID_INPUT = 2

STATUS_COLORS = {
    "Compliant": "green",
    "PartiallyCompliant": "yellow",
    "NonCompliant": "red",
    "NotApplicable": "dim",
    "NotAssessed": "magenta",
}


def _fail(message: str) -> None:
    console.print(f"  [red]ERROR[/red] {escape(message)}")
    sys.exit(EXIT_INVALID_INPUT)


def _print_progress(event: ProgressEvent) -> None:
    console.print(
        f"  [cyan]{event.percent_complete:5.1f}%[/cyan] {escape(event.current_control)}"
        f"  [dim]({event.controls_analyzed}/{event.total_controls}, "
        f"{event.findings_found} findings, ETA {event.estimated_seconds_remaining:.0f}s)[/dim]"
    )


def _print_summary(result: BatchResult) -> None:
    summary = result.summary
    color = STATUS_COLORS.get(summary.overall_status.value, "white")
    console.print()
    console.print(
        f"  Score:    [{color}]{summary.overall_score:.2f}% "
        f"({summary.overall_status.value})[/{color}]"
    )
    console.print(
        f"  Controls: {result.controls_analyzed}/{result.total_controls} analyzed, "
        f"{result.controls_skipped} skipped, {result.findings_created} findings"
    )
    if result.cancelled:
        console.print("  [yellow]Cancelled[/yellow] partial results returned")
    if result.error_message:
        console.print(f"  [red]Aborted[/red] {escape(result.error_message)}")


async def run_analysis(
    request: BatchRequest,
    config: dict,
    dry_run: bool = False,
    provider_override: Optional[str] = None,
    model_override: Optional[str] = None,
    skip_existing: Optional[list[str]] = None,
    documents_dir: Optional[Path] = None,
    findings_dir: Optional[Path] = None,
) -> BatchResult:
    """Wire collaborators, run one batch and stop cleanly on Ctrl-C."""
    from ..core.analyzer import ControlAnalyzer
    from ..core.cancellation import CancellationToken
    from ..core.collaborators import (
        DirectoryDocumentCorpus,
        JsonFindingSink,
        StaticFindingLookup,
    )
    from ..core.orchestrator import BatchOrchestrator, build_orchestrator
    from ..providers.mock import MockProvider

    if documents_dir is not None:
        extra = await DirectoryDocumentCorpus(documents_dir).get_documents(request.project_id)
        request = request.model_copy(update={"documents": [*request.documents, *extra]})

    lookup = StaticFindingLookup(skip_existing) if skip_existing else None
    sink = JsonFindingSink(findings_dir) if findings_dir is not None else None

    if dry_run:
        orchestrator = BatchOrchestrator(
            ControlAnalyzer(MockProvider()),
            finding_lookup=lookup,
            sink=sink,
            inter_control_delay=0,
        )
    else:
        orchestrator = build_orchestrator(
            config,
            provider_override=provider_override,
            model_override=model_override,
            finding_lookup=lookup,
            sink=sink,
        )

    cancel = CancellationToken()
    loop = asyncio.get_running_loop()
    # Signal handlers are unavailable on Windows event loops.
    with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
        loop.add_signal_handler(signal.SIGINT, cancel.cancel, "interrupted")
    try:
        return await orchestrator.run_batch(request, on_progress=_print_progress, cancel=cancel)
    finally:
        with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
            loop.remove_signal_handler(signal.SIGINT)


@click.group()
@click.version_option(__version__, prog_name="controlcheck")
def cli() -> None:
    """Assess documents against compliance framework controls."""


@cli.command()
@click.argument("request_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--config", "-c", "config_file", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="YAML config file")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write the batch result JSON here")
@click.option("--report", type=click.Path(dir_okay=False, path_type=Path), help="Write a markdown report here")
@click.option("--documents-dir", type=click.Path(exists=True, file_okay=False, path_type=Path), help="Add .txt/.md documents from DIR/<projectId>/")
@click.option("--findings-dir", type=click.Path(file_okay=False, path_type=Path), help="Write one JSON file per finding under DIR/<projectId>/")
@click.option("--dry-run", is_flag=True, help="Use mock findings (no API calls)")
@click.option("--mandatory-only", is_flag=True, help="Analyze mandatory controls only")
@click.option("--skip-existing", type=str, help="Comma-separated control ids that already have findings")
@click.option("--ai-provider", type=click.Choice(["anthropic", "azure-openai", "openai", "ollama"]))
@click.option("--ai-model", type=str, help="Model (or Azure deployment) override")
@click.option("--no-fallback", is_flag=True, help="Disable the fallback provider")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
def analyze(
    request_file: Path,
    config_file: Path | None,
    output: Path | None,
    report: Path | None,
    documents_dir: Path | None,
    findings_dir: Path | None,
    dry_run: bool,
    mandatory_only: bool,
    skip_existing: str | None,
    ai_provider: str | None,
    ai_model: str | None,
    no_fallback: bool,
    log_level: str | None,
) -> None:
    """Analyze every control in REQUEST_FILE against its documents."""
    from ..core.config import get_effective_config
    from ..core.findings import export_batch_result_json, load_batch_request
    from ..core.report import generate_compliance_report, get_exit_code
    from ..utils.log import setup_logging

    overrides: dict = {}
    if no_fallback:
        overrides["ai"] = {"enable_fallback": False}
    if log_level:
        overrides["logging"] = {"level": log_level.upper()}

    try:
        config = get_effective_config(config_file, overrides)
        request = load_batch_request(request_file)
    except ControlCheckError as e:
        _fail(str(e))
        return

    setup_logging(config["logging"]["level"])

    skip_ids = [s.strip() for s in skip_existing.split(",") if s.strip()] if skip_existing else []
    if mandatory_only or skip_ids:
        options = BatchOptions(
            skip_existing_findings=request.options.skip_existing_findings or bool(skip_ids),
            mandatory_controls_only=request.options.mandatory_controls_only or mandatory_only,
        )
        request = request.model_copy(update={"options": options})

    console.print()
    console.print(f"  [bold cyan]CONTROLCHECK[/bold cyan] v{__version__}")
    console.print(f"  Project:   [white]{escape(request.project_id)}[/white]")
    console.print(f"  Framework: [white]{escape(request.framework_name or request.framework_code)}[/white]")
    console.print(f"  Controls:  [white]{len(request.controls)}[/white]  Documents: [white]{len(request.documents)}[/white]")
    if dry_run:
        console.print("  Mode:      [yellow]DRY RUN[/yellow]")
    console.print()

    try:
        result = asyncio.run(run_analysis(
            request,
            config,
            dry_run=dry_run,
            provider_override=ai_provider,
            model_override=ai_model,
            skip_existing=skip_ids,
            documents_dir=documents_dir,
            findings_dir=findings_dir,
        ))
    except ControlCheckError as e:
        _fail(str(e))
        return

    _print_summary(result)

    if output:
        export_batch_result_json(result, output)
        console.print(f"  Results:  {escape(str(output))}")
    if report:
        provider = "mock" if dry_run else (ai_provider or config["ai"]["provider"])
        report.parent.mkdir(parents=True, exist_ok=True)
        report.write_text(
            generate_compliance_report(result, request, provider=provider, dry_run=dry_run),
            encoding="utf-8",
        )
        console.print(f"  Report:   {escape(str(report))}")
    console.print()

    sys.exit(get_exit_code(result))


@cli.command()
@click.argument("request_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("control_code")
@click.option("--config", "-c", "config_file", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="YAML config file")
def prompt(request_file: Path, control_code: str, config_file: Path | None) -> None:
    """Print the prompt that would be sent for CONTROL_CODE.

    Example: controlcheck prompt request.json A.5.1
    """
    from ..core.config import get_effective_config
    from ..core.findings import load_batch_request
    from ..core.prompts import build_control_prompt

    try:
        config = get_effective_config(config_file)
        request = load_batch_request(request_file)
    except ControlCheckError as e:
        _fail(str(e))
        return

    wanted = control_code.strip().lower()
    control = next(
        (c for c in request.controls if c.code.lower() == wanted or c.id.lower() == wanted),
        None,
    )
    if control is None:
        _fail(f"Control {control_code} not found in {request_file}")
        return

    # Plain echo: the prompt contains square brackets rich would treat as markup.
    click.echo(build_control_prompt(
        control,
        request.documents,
        config["analysis"]["max_document_chars"],
    ), nl=False)


@cli.command()
@click.argument("findings_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Print the score as JSON")
def score(findings_file: Path, as_json: bool) -> None:
    """Score a JSON list of {status, riskLevel, isMandatory} findings."""
    from ..core.findings import load_finding_summaries
    from ..core.scoring import calculate_compliance_score, status_for_score

    try:
        findings = load_finding_summaries(findings_file)
    except ControlCheckError as e:
        _fail(str(e))
        return

    value = calculate_compliance_score(findings)
    status = status_for_score(value)
    if as_json:
        click.echo(json.dumps({
            "overallScore": value,
            "overallStatus": status.value,
            "findings": len(findings),
        }))
        return

    color = STATUS_COLORS.get(status.value, "white")
    console.print(f"  {len(findings)} findings")
    console.print(f"  Score: [{color}]{value:.2f}% ({status.value})[/{color}]")


@cli.command()
@click.argument("gap_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--config", "-c", "config_file", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="YAML config file")
@click.option("--dry-run", is_flag=True, help="Use a canned plan (no API calls)")
@click.option("--ai-provider", type=click.Choice(["anthropic", "azure-openai", "openai", "ollama"]))
@click.option("--ai-model", type=str, help="Model (or Azure deployment) override")
@click.option("--no-fallback", is_flag=True, help="Disable the fallback provider")
@click.option("--json", "as_json", is_flag=True, help="Print the guidance as JSON")
def remediate(
    gap_file: Path,
    config_file: Path | None,
    dry_run: bool,
    ai_provider: str | None,
    ai_model: str | None,
    no_fallback: bool,
    as_json: bool,
) -> None:
    """Generate a remediation plan for the gap described in GAP_FILE.

    GAP_FILE holds {controlId, controlCode, controlDescription,
    gapDescription, currentStatus, riskLevel, organizationContext}.
    """
    from ..core.analyzer import ControlAnalyzer
    from ..core.config import get_effective_config
    from ..core.findings import load_remediation_request
    from ..core.orchestrator import build_analyzer
    from ..core.report import EXIT_ABORTED
    from ..providers.mock import MOCK_REMEDIATION, MockProvider
    from ..utils.log import setup_logging

    overrides: dict = {"ai": {"enable_fallback": False}} if no_fallback else {}
    try:
        config = get_effective_config(config_file, overrides)
        request = load_remediation_request(gap_file)
    except ControlCheckError as e:
        _fail(str(e))
        return

    # JSON output is meant for piping, so only problems are logged.
    setup_logging("WARNING" if as_json else config["logging"]["level"])

    try:
        if dry_run:
            analyzer = ControlAnalyzer(MockProvider(responses=[MOCK_REMEDIATION]))
        else:
            analyzer = build_analyzer(config, ai_provider, ai_model)
        guidance = asyncio.run(analyzer.generate_remediation(request))
    except ControlCheckError as e:
        console.print(f"  [red]FAILED[/red] {escape(str(e))}")
        sys.exit(EXIT_ABORTED)

    if as_json:
        click.echo(json.dumps(guidance.model_dump(mode="json", by_alias=True), indent=2))
        return

    label = request.control_code or request.control_id
    console.print(f"  [bold]Remediation plan for {escape(label)}[/bold]")
    if guidance.summary:
        console.print(f"  {escape(guidance.summary)}")
    console.print()
    for step in guidance.steps:
        console.print(f"  [cyan]{step.step_number}.[/cyan] {escape(step.description)}")
        if step.implementation:
            console.print(f"     {escape(step.implementation)}")
        for action in step.required_actions:
            console.print(f"     - {escape(action)}")
    if guidance.estimated_effort_hours is not None:
        console.print(f"\n  Estimated effort: {guidance.estimated_effort_hours:g} hours")
    if guidance.resources:
        console.print(f"  Resources: {escape(', '.join(guidance.resources))}")
    if guidance.best_practices:
        console.print(f"  Best practices: {escape(guidance.best_practices)}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
