"""CLI entrypoint for docsynth."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.markup import escape

from docsynth.config import ensure_trace_root, load_config, resolve_templates_dir
from docsynth.document_updates import DocumentUpdateEngine
from docsynth.exceptions import (
    DocumentWriteError,
    InvalidConfigError,
    TemplateLoadError,
    VariableCoercionError,
)
from docsynth.file_ops import read_text_or_empty
from docsynth.models import (
    AppConfig,
    ConversationContext,
    RenderContext,
    RenderFailure,
    SectionUpdateSpec,
    TemplateDefinition,
    UpdateMode,
    VariableValue,
)
from docsynth.placeholders import coerce_variable_value
from docsynth.progress import measure_progress
from docsynth.template_registry import TemplateRegistry, parse_template_file, validate_template
from docsynth.template_renderer import TemplateRenderer, write_document
from docsynth.template_structure import derive_structure
from docsynth.tracing import RunTraceCollector

app = typer.Typer(help="Render document templates and fold agent replies into their sections.")
console = Console()

ConfigOption = Annotated[Path | None, typer.Option(help="Optional YAML config path.")]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose/--no-verbose", help="Enable detailed logs. Enabled by default."),
]


def _vprint(enabled: bool, message: str) -> None:
    """Print verbose progress messages."""
    if enabled:
        console.print(f"[cyan]verbose:[/cyan] {escape(message)}")


def _configure_trace_streaming(trace: RunTraceCollector, enabled: bool) -> None:
    """Enable live trace-event printing in verbose mode."""
    if not enabled:
        trace.set_live_sink(None)
        return

    def _sink(event: dict[str, Any]) -> None:
        duration = event.get("duration_ms")
        details = _truncate_details(str(event.get("details", "")))
        parts = [
            f"trace[{event.get('seq', '?')}]",
            f"{event.get('event_type', '')}",
            f"{event.get('component', '')}.{event.get('action', '')}",
            f"status={event.get('status', '')}",
        ]
        for key in ("template_id", "section", "document_path"):
            if event.get(key):
                parts.append(f"{key}={event[key]}")
        if duration != "":
            parts.append(f"duration_ms={duration}")
        if details:
            parts.append(f"details={details}")
        _vprint(True, " ".join(parts))

    trace.set_live_sink(_sink)


def _truncate_details(text: str, max_len: int = 240) -> str:
    value = text.strip()
    if len(value) <= max_len:
        return value
    return f"{value[: max_len - 3]}..."


def _start_run(config: Path | None, verbose: bool) -> tuple[AppConfig, RunTraceCollector]:
    trace = RunTraceCollector()
    _configure_trace_streaming(trace, verbose)
    _vprint(verbose, "Loading runtime configuration (YAML + environment).")
    try:
        runtime_config = load_config(config_path=config)
    except InvalidConfigError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=3) from exc
    trace.log(
        event_type="run",
        component="cli",
        action="config_loaded",
        details={
            "workspace_root": runtime_config.workspace_root,
            "templates_dir": runtime_config.templates_dir,
        },
    )
    return runtime_config, trace


def _build_registry(
    runtime_config: AppConfig,
    trace: RunTraceCollector,
    verbose: bool,
) -> TemplateRegistry:
    templates_dir = resolve_templates_dir(runtime_config)
    registry = TemplateRegistry(templates_dir, trace=trace)
    loaded = registry.load()
    _vprint(verbose, f"Loaded {loaded} workspace templates from: {templates_dir}")
    for error in registry.load_errors:
        console.print(f"[yellow]Skipped template:[/yellow] {escape(error)}")
    return registry


def _require_template(registry: TemplateRegistry, template_id: str) -> TemplateDefinition:
    template = registry.get_template(template_id)
    if template is None:
        console.print(f"[red]Template '{escape(template_id)}' not found.[/red]")
        raise typer.Exit(code=2)
    return template


def _finish_run(runtime_config: AppConfig, trace: RunTraceCollector, verbose: bool) -> None:
    if not runtime_config.trace_dir:
        return
    run_dir = _make_run_dir(ensure_trace_root(runtime_config.trace_dir))
    trace_json, trace_csv = trace.export(run_dir)
    counts = ", ".join(f"{status}: {count}" for status, count in trace.status_counts().items())
    _vprint(verbose, f"Trace artifacts written ({counts}): {trace_json}, {trace_csv}")


@app.command("list-templates")
def list_templates_cmd(
    agent: Annotated[
        str | None,
        typer.Option(help="Only list templates this agent may use."),
    ] = None,
    config: ConfigOption = None,
    verbose: VerboseOption = True,
) -> None:
    """List built-in and workspace templates."""
    runtime_config, trace = _start_run(config, verbose)
    try:
        registry = _build_registry(runtime_config, trace, verbose)
        templates = (
            registry.templates_for_agent(agent) if agent is not None else registry.list_templates()
        )
        if not templates:
            console.print("No templates available.")
            return
        for template in templates:
            origin = "built-in" if registry.is_builtin(template.id) else "workspace"
            agents = ", ".join(template.agent_restrictions) or "any agent"
            console.print(
                f"[bold]{escape(template.id)}[/bold] ({origin}) {escape(template.name)}"
                f" - agents: {escape(agents)}"
            )
    finally:
        _finish_run(runtime_config, trace, verbose)


@app.command("validate-template")
def validate_template_cmd(
    template: Annotated[
        str | None,
        typer.Option(help="Identifier of a registered template."),
    ] = None,
    file: Annotated[
        Path | None,
        typer.Option(help="Path to a template file (.md, .yaml or .yml)."),
    ] = None,
    config: ConfigOption = None,
    verbose: VerboseOption = True,
) -> None:
    """Validate a template's placeholders, variables and required sections."""
    if (template is None) == (file is None):
        console.print("[red]Pass exactly one of --template or --file.[/red]")
        raise typer.Exit(code=5)

    runtime_config, trace = _start_run(config, verbose)
    try:
        if file is not None:
            _vprint(verbose, f"Loading template file: {file}")
            try:
                definition = parse_template_file(file)
            except TemplateLoadError as exc:
                console.print(f"[red]{escape(str(exc))}[/red]")
                raise typer.Exit(code=2) from exc
        else:
            registry = _build_registry(runtime_config, trace, verbose)
            definition = _require_template(registry, template or "")

        errors = validate_template(definition)
        trace.log(
            event_type="template",
            component="cli",
            action="validate",
            status="error" if errors else "ok",
            template_id=definition.id,
            details={"errors": len(errors)},
        )
        if errors:
            console.print("[red]Template validation failed:[/red]")
            for error in errors:
                console.print(f"- {escape(error)}")
            raise typer.Exit(code=2)
        structure = derive_structure(definition)
        console.print(
            f"[green]Template valid.[/green] Sections: {len(structure.sections)} "
            f"(required: {len(structure.required_sections())})"
        )
    finally:
        _finish_run(runtime_config, trace, verbose)


@app.command("render")
def render_cmd(
    out: Annotated[Path, typer.Option(help="Path of the document to create.")],
    template: Annotated[
        str | None,
        typer.Option(help="Template identifier. Defaults to the configured default template."),
    ] = None,
    var: Annotated[
        list[str] | None,
        typer.Option("--var", help="Variable binding as name=value. Repeatable."),
    ] = None,
    author: Annotated[
        str | None,
        typer.Option(help="Author identity injected when the template leaves it unbound."),
    ] = None,
    force: Annotated[bool, typer.Option(help="Overwrite an existing document.")] = False,
    config: ConfigOption = None,
    verbose: VerboseOption = True,
) -> None:
    """Render a template into a new markdown document."""
    runtime_config, trace = _start_run(config, verbose)
    try:
        registry = _build_registry(runtime_config, trace, verbose)
        template_id = template or runtime_config.default_template
        definition = _require_template(registry, template_id)
        variables = _parse_bindings(definition, var or [])

        context = RenderContext(
            variables=variables,
            workspace_root=runtime_config.workspace_root,
            author=author or runtime_config.author,
        )
        _vprint(verbose, f"Rendering template '{template_id}' with {len(variables)} bindings.")
        result = TemplateRenderer(registry, trace=trace).render(template_id, context)
        if isinstance(result, RenderFailure):
            console.print(f"[red]{escape(result.message)}[/red]")
            raise typer.Exit(code=2)

        try:
            written = write_document(result, out, overwrite=force)
        except FileExistsError as exc:
            console.print(f"[red]{escape(str(exc))}. Use --force to overwrite.[/red]")
            raise typer.Exit(code=5) from exc
        except DocumentWriteError as exc:
            console.print(f"[red]{escape(str(exc))}[/red]")
            raise typer.Exit(code=4) from exc
        console.print(f"[green]Document rendered.[/green] {escape(str(written))}")
    finally:
        _finish_run(runtime_config, trace, verbose)


@app.command("insert-section")
def insert_section_cmd(
    document: Annotated[Path, typer.Option(help="Markdown document to update.")],
    header: Annotated[str, typer.Option(help="Heading of the target section.")],
    content: Annotated[str, typer.Option(help="Markdown content to insert.")],
    mode: Annotated[
        UpdateMode,
        typer.Option(help="How to fold content into the section."),
    ] = UpdateMode.REPLACE,
    config: ConfigOption = None,
    verbose: VerboseOption = True,
) -> None:
    """Update one section in place, or append it when the document lacks it."""
    runtime_config, trace = _start_run(config, verbose)
    try:
        engine = DocumentUpdateEngine(trace=trace)
        update = SectionUpdateSpec(section=header, content=content, mode=mode)
        try:
            outcome = engine.apply_section_updates(document, [update])
        except DocumentWriteError as exc:
            console.print(f"[red]{escape(str(exc))}[/red]")
            raise typer.Exit(code=4) from exc
        if outcome.sections_created:
            console.print(f"[green]Section created.[/green] {escape(header)}")
        elif outcome.changed:
            console.print(f"[green]Section updated.[/green] {escape(header)} ({mode.value})")
        else:
            console.print(f"Section unchanged: {escape(header)}")
    finally:
        _finish_run(runtime_config, trace, verbose)


@app.command("update")
def update_cmd(
    document: Annotated[Path, typer.Option(help="Markdown document to update.")],
    template: Annotated[str, typer.Option(help="Template the document was rendered from.")],
    agent: Annotated[str, typer.Option(help="Agent that produced the reply.")],
    reply: Annotated[str, typer.Option(help="File holding the agent reply, or '-' for stdin.")],
    turn: Annotated[int, typer.Option(min=1, help="Conversation turn number, starting at 1.")] = 1,
    config: ConfigOption = None,
    verbose: VerboseOption = True,
) -> None:
    """Fold an agent reply into the sections it talks about."""
    runtime_config, trace = _start_run(config, verbose)
    try:
        registry = _build_registry(runtime_config, trace, verbose)
        definition = _require_template(registry, template)
        if not definition.allows_agent(agent):
            console.print(
                f"[red]Agent '{escape(agent)}' may not use template '{escape(definition.id)}'.[/red]"
            )
            raise typer.Exit(code=5)
        reply_text = _read_reply(reply)
        structure = derive_structure(definition)
        context = ConversationContext(
            agent=agent,
            template_id=definition.id,
            current_turn=turn,
            document_path=str(document),
        )

        engine = DocumentUpdateEngine(
            trace=trace,
            enable_document_updates=runtime_config.enable_document_updates,
        )
        if not runtime_config.enable_document_updates:
            _vprint(verbose, "Document updates are disabled by configuration.")
        try:
            outcome = engine.update_document_from_conversation(document, reply_text, structure, context)
        except DocumentWriteError as exc:
            console.print(f"[red]{escape(str(exc))}[/red]")
            raise typer.Exit(code=4) from exc

        if not outcome.sections_updated and not outcome.sections_created:
            console.print("No sections matched the reply; document left unchanged.")
            return
        for name in outcome.sections_updated:
            console.print(f"[green]Updated[/green] {escape(name)}")
        for name in outcome.sections_created:
            console.print(f"[green]Created[/green] {escape(name)}")
        console.print(
            f"Progress: {outcome.progress.progress_percentage:g}% "
            f"({outcome.progress.completed_sections}/{outcome.progress.total_sections} required sections)"
        )
    finally:
        _finish_run(runtime_config, trace, verbose)


@app.command("progress")
def progress_cmd(
    document: Annotated[Path, typer.Option(help="Markdown document to measure.")],
    template: Annotated[str, typer.Option(help="Template the document was rendered from.")],
    config: ConfigOption = None,
    verbose: VerboseOption = True,
) -> None:
    """Report which required sections of a document are filled in."""
    runtime_config, trace = _start_run(config, verbose)
    try:
        registry = _build_registry(runtime_config, trace, verbose)
        definition = _require_template(registry, template)
        text, error = read_text_or_empty(document)
        if error is not None:
            console.print(f"[red]Cannot read document {escape(str(document))}: {escape(str(error))}[/red]")
            raise typer.Exit(code=5)

        structure = derive_structure(definition)
        satisfied, percentage = measure_progress(text, structure)
        trace.log(
            event_type="document",
            component="cli",
            action="progress",
            document_path=document,
            template_id=definition.id,
            details={"satisfied": satisfied, "percentage": percentage},
        )
        required = structure.required_sections()
        console.print(f"Progress: {percentage:g}% ({len(satisfied)}/{len(required)} required sections)")
        for name in required:
            marker = "[green]done[/green]" if name in satisfied else "[yellow]missing[/yellow]"
            console.print(f"- {escape(name)}: {marker}")
    finally:
        _finish_run(runtime_config, trace, verbose)


def _parse_bindings(definition: TemplateDefinition, raw_bindings: list[str]) -> dict[str, VariableValue]:
    variables: dict[str, VariableValue] = {}
    for raw in raw_bindings:
        name, separator, value = raw.partition("=")
        name = name.strip()
        if not separator or not name:
            console.print(f"[red]Invalid --var '{escape(raw)}'; expected name=value.[/red]")
            raise typer.Exit(code=5)
        spec = definition.variable(name)
        if spec is None:
            variables[name] = value
            continue
        try:
            variables[name] = coerce_variable_value(spec, value)
        except VariableCoercionError as exc:
            console.print(f"[red]{escape(str(exc))}[/red]")
            raise typer.Exit(code=5) from exc
    return variables


def _read_reply(reply: str) -> str:
    if reply == "-":
        return typer.get_text_stream("stdin").read()
    try:
        return Path(reply).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        console.print(f"[red]Cannot read reply file {escape(reply)}: {escape(str(exc))}[/red]")
        raise typer.Exit(code=5) from exc


def _make_run_dir(root: Path) -> Path:
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    run_dir = root / stamp
    suffix = 0
    while run_dir.exists():
        suffix += 1
        run_dir = root / f"{stamp}-{suffix}"
    run_dir.mkdir(parents=True, exist_ok=False)
    return run_dir


def main() -> None:
    """Script entrypoint."""
    app()


if __name__ == "__main__":
    main()
