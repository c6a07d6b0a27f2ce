"""Schema CLI commands: validate, list and show."""

import json
from pathlib import Path

import click

from schemacrud.errors import SchemaCrudError
from schemacrud.schema.loader import DirectorySchemaSource
from schemacrud.schema.store import SchemaStore
from schemacrud.schema.validator import validate_schema_dir, validate_schema_file


@click.group()
@click.option(
    "--schema-dir",
    default="schema",
    envvar="SCHEMACRUD_SCHEMA_PATH",
    show_default=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory holding schema documents.",
)
@click.pass_context
def schema(ctx: click.Context, schema_dir: Path):
    """Schema document commands."""
    ctx.obj = {"schema_dir": schema_dir}


def _store(ctx: click.Context) -> SchemaStore:
    schema_dir = ctx.obj["schema_dir"]
    if not schema_dir.is_dir():
        click.echo(f"Error: Schema directory not found at {schema_dir}", err=True)
        raise SystemExit(1)
    return SchemaStore(DirectorySchemaSource(schema_dir))


@schema.command()
@click.option(
    "--strict",
    is_flag=True,
    default=False,
    help="Treat warnings as errors.",
)
@click.option(
    "--path",
    "target_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Validate a single schema document instead of the whole directory.",
)
@click.pass_context
def validate(ctx: click.Context, strict: bool, target_path: Path | None):
    """Validate schema documents, then load every model."""
    schema_dir = ctx.obj["schema_dir"]

    if target_path is not None:
        issues = validate_schema_file(target_path)
        if strict:
            for issue in issues:
                issue.severity = "error"
    else:
        if not schema_dir.is_dir():
            click.echo(f"Error: Schema directory not found at {schema_dir}", err=True)
            raise SystemExit(1)
        issues = validate_schema_dir(schema_dir, strict=strict)

    errors = [i for i in issues if i.severity == "error"]
    warnings = [i for i in issues if i.severity == "warning"]

    for issue in issues:
        colour = "red" if issue.severity == "error" else "yellow"
        click.echo(click.style(str(issue), fg=colour))

    if errors:
        click.echo(
            click.style(
                f"\n{len(errors)} schema error(s) found"
                + (f", {len(warnings)} warning(s)" if warnings else ""),
                fg="red",
                bold=True,
            )
        )
        raise SystemExit(1)

    if warnings:
        click.echo(click.style(f"{len(warnings)} warning(s) found.", fg="yellow"))

    # Full load, including normalization and relationship parsing
    if target_path is None:
        store = SchemaStore(DirectorySchemaSource(schema_dir))
        models = store.list_models()
        click.echo(f"\nLoaded {len(models)} model(s):")
        for model, connection in models:
            try:
                loaded = store.load(model, connection)
            except SchemaCrudError as e:
                click.echo(click.style(f"\nFailed to load '{model}': {e.message}", fg="red"), err=True)
                raise SystemExit(1)
            where = f"@{connection}" if connection else ""
            click.echo(
                f"  ✓ {model}{where} ({len(loaded.fields)} fields, "
                f"{len(loaded.relationships)} relationships, {len(loaded.actions)} actions)"
            )

    click.echo(click.style("\nAll schemas are valid.", fg="green", bold=True))


@schema.command("list")
@click.pass_context
def list_cmd(ctx: click.Context):
    """List the models found in the schema directory."""
    store = _store(ctx)
    models = store.list_models()
    if not models:
        click.echo("No schema documents found.")
        return
    for model, connection in models:
        click.echo(f"{model}@{connection}" if connection else model)


@schema.command()
@click.argument("model")
@click.option("--context", default=None, help="Context filter, e.g. 'list' or 'list,form'.")
@click.option("--connection", default=None, help="Named database connection.")
@click.pass_context
def show(ctx: click.Context, model: str, context: str | None, connection: str | None):
    """Print a model's (optionally context-filtered) schema as JSON."""
    store = _store(ctx)
    try:
        loaded = store.load(model, connection, context)
    except SchemaCrudError as e:
        click.echo(click.style(f"Error: {e.message}", fg="red"), err=True)
        raise SystemExit(1)
    click.echo(json.dumps(loaded.to_dict(), indent=2, default=str))
