"""CLI application for the Databricks Prometheus exporter."""

import typer

from dbexporter.cli.commands.check import check
from dbexporter.cli.commands.serve import serve
from dbexporter.cli.common.exits import die
from dbexporter.cli.common.logs import configure_logging
from dbexporter.cli.common.options import LogFormatOpt, LogLevelOpt

app = typer.Typer(
    help="databricks-exporter - Prometheus metrics from Databricks system tables",
    no_args_is_help=True,
)


@app.callback()
def _init(
    log_level: str = LogLevelOpt,
    log_format: str = LogFormatOpt,
):
    """Configure logging for every command."""
    try:
        configure_logging(log_level, log_format)
    except ValueError as e:
        die(str(e), code=1)


app.command("serve", help="Serve metrics over HTTP until interrupted.")(serve)
app.command("check", help="Check warehouse connectivity and system table access.")(check)


if __name__ == "__main__":
    app()
