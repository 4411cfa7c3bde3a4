from __future__ import annotations

import typer

from glabu import __version__
from glabu.cli.commands.package_cmd import package_download, package_files, package_upload
from glabu.cli.commands.release_cmd import release

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# Commands
app.command()(release)
app.command("package-upload")(package_upload)
app.command("package-files")(package_files)
app.command("package-download")(package_download)


@app.callback(invoke_without_command=True)
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
) -> None:
    if version:
        typer.echo(__version__)
        raise typer.Exit(code=0)


def main() -> None:
    app()
