"""SchemaCRUD CLI entry point."""

import click


@click.group()
def cli():
    """SchemaCRUD: schema-driven admin/CRUD engine CLI."""
    pass


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address.")
@click.option("--port", default=8000, show_default=True, type=int, help="Bind port.")
@click.option("--reload", is_flag=True, default=False, help="Reload on code changes.")
def serve(host: str, port: int, reload: bool):
    """Serve the CRUD API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "schemacrud.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


# Register subcommand groups
from schemacrud.cli.schema_cmd import schema  # noqa: E402

cli.add_command(schema)
