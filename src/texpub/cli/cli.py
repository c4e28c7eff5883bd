"""CLI entrypoint: Typer app definition and command registration"""

import typer

from texpub.cli.commands import build_cmd, cache_cmd, compile_cmd, index_cmd, render_cmd, search_cmd


app = typer.Typer(name="texpub", no_args_is_help=True, help="LaTeX exercise compilation pipeline")

app.command(name="compile")(compile_cmd)
app.command(name="render")(render_cmd)
app.command(name="index")(index_cmd)
app.command(name="build")(build_cmd)
app.command(name="search")(search_cmd)
app.command(name="cache")(cache_cmd)
