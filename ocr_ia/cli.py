"""
OCR-IA command line interface.

Commands:
    ocr-ia extract journal.pdf -o journal.json
    ocr-ia entities decret.txt
    ocr-ia relations decret.txt
    ocr-ia map procedure.txt --schema administrative_procedure
    ocr-ia schemas
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click
from loguru import logger
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .config import PipelineConfig
from .errors import OCRIAError
from .mapping.registry import SchemaRegistry
from .pipeline import OCRIAPipeline

console = Console()


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> None:
    """Configure loguru sinks and the standard library loggers."""
    logger.remove()

    log_level = "DEBUG" if verbose else "INFO"
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{message}</cyan>",
        level=log_level,
        colorize=True,
    )

    if log_file:
        logger.add(
            log_file,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}",
            level="DEBUG",
            rotation="10 MB",
        )

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def write_json(data: Any, output: Optional[Path]) -> None:
    payload = json.dumps(data, indent=2, ensure_ascii=False, default=str)
    if output:
        output.write_text(payload, encoding='utf-8')
        console.print(f"[green]✓ Output written to: {output}[/]")
    else:
        click.echo(payload)


def load_config(ctx: click.Context) -> PipelineConfig:
    path = ctx.obj.get('config_path')
    return PipelineConfig.from_yaml(path) if path else PipelineConfig()


def build_pipeline(ctx: click.Context, config: Optional[PipelineConfig] = None) -> OCRIAPipeline:
    registry = SchemaRegistry()
    if ctx.obj.get('schemas_path'):
        registry.load_yaml(ctx.obj['schemas_path'])
    return OCRIAPipeline(config or load_config(ctx), registry=registry)


def fail(error: Exception, verbose: bool) -> None:
    console.print(f"[bold red]Error: {error}[/]")
    if verbose:
        logger.exception("Full traceback:")
    raise SystemExit(1)


@click.group()
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True, path_type=Path),
              default=None, help='Pipeline configuration YAML file')
@click.option('--schemas', 'schemas_path', type=click.Path(exists=True, path_type=Path),
              default=None, help='Additional form schemas YAML file')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--log-file', type=click.Path(path_type=Path), default=None, help='Write logs to file')
@click.pass_context
def main(ctx: click.Context, config_path: Optional[Path], schemas_path: Optional[Path],
         verbose: bool, log_file: Optional[Path]):
    """
    OCR-IA: structured extraction from Algerian legal and administrative documents.
    """
    setup_logging(verbose=verbose, log_file=log_file)
    ctx.ensure_object(dict)
    ctx.obj.update({'config_path': config_path, 'schemas_path': schemas_path, 'verbose': verbose})


@main.command()
@click.argument('input_path', type=click.Path(exists=True, path_type=Path))
@click.option('--output', '-o', 'output_path', type=click.Path(path_type=Path), default=None,
              help='Output JSON file (stdout when omitted)')
@click.option('--dpi', type=int, default=None, help='Rasterization resolution')
@click.option('--languages', default=None, help='Tesseract languages, e.g. fra+ara')
@click.option('--tables/--no-tables', 'enable_tables', default=True, help='Enable/disable table detection')
@click.pass_context
def extract(ctx: click.Context, input_path: Path, output_path: Optional[Path], dpi: Optional[int],
            languages: Optional[str], enable_tables: bool):
    """Extract page geometry and text from a PDF or image."""
    verbose = ctx.obj['verbose']
    try:
        config = load_config(ctx)
        if dpi:
            config.dpi = dpi
        if languages:
            config.content.languages = languages
        config.enable_table_detection = enable_tables
        pipeline = build_pipeline(ctx, config)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            console=Console(stderr=True),
        ) as progress:
            task = progress.add_task(f"Processing {input_path.name}...", total=100)

            def on_progress(percent: float, stage: str, details: Optional[dict] = None) -> None:
                progress.update(task, completed=percent, description=f"{input_path.name}: {stage}")

            document = pipeline.extract_document(input_path, progress_callback=on_progress)
    except (OCRIAError, OSError, ValueError) as e:
        fail(e, verbose)

    write_json(document.to_dict(), output_path)

    table = Table(title="Extraction Summary")
    table.add_column("Page", justify="right")
    table.add_column("Lines", justify="right")
    table.add_column("Columns", justify="right")
    table.add_column("Tables", justify="right")
    table.add_column("Confidence", justify="right")
    for page in document.pages:
        table.add_row(
            str(page.page_number),
            str(page.lines.total),
            str(len(page.separators.columns)),
            str(len(page.tables)),
            f"{page.content.confidence:.0%}" if page.content else "",
        )
    Console(stderr=True).print(table)


def read_text(source) -> str:
    text = source.read()
    if not text.strip():
        raise click.UsageError("Input text is empty")
    return text


@main.command()
@click.argument('source', type=click.File('r', encoding='utf-8'))
@click.option('--json', 'as_json', is_flag=True, help='Print JSON instead of a table')
@click.option('--threshold', type=float, default=None, help='Minimum entity confidence')
@click.pass_context
def entities(ctx: click.Context, source, as_json: bool, threshold: Optional[float]):
    """Recognize named entities in a text file ('-' for stdin)."""
    text = read_text(source)
    config = load_config(ctx)
    if threshold is not None:
        config.recognizer.confidence_threshold = threshold
    pipeline = build_pipeline(ctx, config)
    result = pipeline.recognize_entities(text)

    if as_json:
        write_json(result.to_dict(), None)
        return

    table = Table(title=f"Entities ({len(result.entities)})")
    table.add_column("Type", style="cyan")
    table.add_column("Text")
    table.add_column("Value", style="green")
    table.add_column("Lang")
    table.add_column("Confidence", justify="right")
    for entity in result.entities:
        table.add_row(entity.entity_type.value, entity.text, entity.value, entity.language, f"{entity.confidence:.0%}")
    console.print(table)


@main.command()
@click.argument('source', type=click.File('r', encoding='utf-8'))
@click.option('--json', 'as_json', is_flag=True, help='Print JSON instead of a table')
@click.pass_context
def relations(ctx: click.Context, source, as_json: bool):
    """Find references between legal texts ('-' for stdin)."""
    text = read_text(source)
    found = build_pipeline(ctx).analyze_relationships(text)

    if as_json:
        write_json([r.to_dict() for r in found], None)
        return

    table = Table(title=f"Legal relationships ({len(found)})")
    table.add_column("Type", style="cyan")
    table.add_column("Target")
    table.add_column("Date")
    table.add_column("Confidence", justify="right")
    for relationship in found:
        target = relationship.target
        table.add_row(
            relationship.relation_type.value,
            f"{target.doc_type} {target.number}",
            target.gregorian_date or target.hijri_date or "",
            f"{relationship.confidence:.0%}",
        )
    console.print(table)


@main.command(name='map')
@click.argument('source', type=click.File('r', encoding='utf-8'))
@click.option('--schema', '-s', 'schema_id', default=None,
              help='Schema id or document type (detected from the text when omitted)')
@click.option('--strict', is_flag=True, help='Apply warning-level rules and field constraints')
@click.option('--output', '-o', 'output_path', type=click.Path(path_type=Path), default=None,
              help='Write the mapping and quality report as JSON')
@click.pass_context
def map_command(ctx: click.Context, source, schema_id: Optional[str], strict: bool, output_path: Optional[Path]):
    """Map a text onto a form schema and print the quality report."""
    text = read_text(source)
    config = load_config(ctx)
    if strict:
        config.validation.strict_mode = True
        config.mapping.strict_validation = True
    pipeline = build_pipeline(ctx, config)

    try:
        result = pipeline.process_text(text, schema_id)
    except OCRIAError as e:
        fail(e, ctx.obj['verbose'])

    mapping = result.mapping
    report = result.report

    table = Table(title=f"Form: {mapping.form_id} ({mapping.completeness:.0f}% complete)")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_column("Source")
    table.add_column("Confidence", justify="right")
    table.add_column("Valid")
    for suggestion in mapping.suggestions:
        validation = report.get(suggestion.field_id)
        status = "[green]✓" if validation is None or validation.is_valid else "[red]✗"
        table.add_row(
            suggestion.field_name,
            suggestion.value,
            suggestion.source,
            f"{suggestion.confidence:.0%}",
            status,
        )
    console.print(table)

    if mapping.ambiguous_fields:
        console.print(f"[yellow]Ambiguous:[/] {', '.join(mapping.ambiguous_field_ids)}")
    if mapping.unmapped_fields:
        console.print(f"[dim]Unmapped:[/] {', '.join(mapping.unmapped_fields)}")

    console.print()
    console.print(f"[bold]Quality score:[/] {report.overall_score:.1f}")
    console.print(f"[bold]Errors:[/] {report.errors}  [bold]Warnings:[/] {report.warnings}")
    for suggestion in report.suggestions:
        console.print(f"  [{suggestion.priority}] {suggestion.description}")

    if output_path:
        write_json(result.to_dict(), output_path)


@main.command()
@click.pass_context
def schemas(ctx: click.Context):
    """List the registered form schemas."""
    registry = build_pipeline(ctx).registry

    table = Table(title="Form schemas")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Fields", justify="right")
    for schema in registry.list_schemas():
        table.add_row(schema.id, schema.name, schema.schema_type, str(len(schema.fields)))
    console.print(table)


if __name__ == "__main__":
    main()
