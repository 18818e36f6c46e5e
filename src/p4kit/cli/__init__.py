"""p4kit command line interface."""

from __future__ import annotations

import logging

import typer

from .commands import cleanup, info, pending, revert, root, sync

app = typer.Typer(
    name="p4kit",
    help="Perforce session and changelist helper.",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log p4 commands and warnings"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


app.command()(info)
app.command()(root)
app.command()(sync)
app.command()(revert)
app.command()(pending)
app.command()(cleanup)


def main() -> None:
    app()


__all__ = ["app", "main"]
