"""payrun command line: set up the database, run payroll, export payments."""

import logging
from pathlib import Path

import click

from payrun import __version__
from payrun.config.settings import LOG_LEVEL
from payrun.database.db import configure_engine, init_db, repository_scope
from payrun.exceptions import PayrollError
from payrun.models.export import ExportType
from payrun.service import PayrollService
from payrun.utils.formatters import format_currency

logger = logging.getLogger(__name__)


def _print_run(run):
    click.echo(f"Run {run.run_number} (id={run.id}): {run.status.value}")
    click.echo(f"  Period:      {run.pay_period_start} - {run.pay_period_end}, paid {run.pay_date}")
    click.echo(f"  Employees:   {run.total_employees}")
    click.echo(f"  Gross pay:   {format_currency(run.total_gross_pay)}")
    click.echo(f"  Deductions:  {format_currency(run.total_deductions)}")
    click.echo(f"  Net pay:     {format_currency(run.total_net_pay)}")
    for exception in run.exceptions:
        click.echo(f"  [{exception.kind}] {exception.employee_id}: {exception.reason} {exception.detail}".rstrip())


def _service(ctx) -> PayrollService:
    return ctx.obj["service"]


@click.group()
@click.version_option(version=__version__, prog_name="payrun")
@click.option("--database-url", envvar="DATABASE_URL", help="SQLAlchemy URL (default from settings).")
@click.option("--output-dir", type=click.Path(file_okay=False), help="Directory for generated files.")
@click.option("--log-level", default=LOG_LEVEL, show_default=True,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
@click.pass_context
def cli(ctx, database_url, output_dir, log_level):
    """payrun - payroll runs, payslips and bank payment files."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    if database_url:
        configure_engine(database_url)
    ctx.ensure_object(dict)
    ctx.obj["service"] = PayrollService(output_dir=Path(output_dir) if output_dir else None)


@cli.command("init-db")
def init_db_command():
    """Create the database tables."""
    init_db()
    click.echo("Database initialized")


@cli.command()
def seed():
    """Load the sample employee directory and compensation records."""
    from payrun.api.mock_directory import MockDirectoryAPI

    init_db()
    with repository_scope() as repo:
        counts = MockDirectoryAPI().seed(repo)
    click.echo(f"Seeded {counts['employees']} employees and "
               f"{counts['compensation_records']} compensation records")


@cli.command()
@click.option("--start", "pay_period_start", type=click.DateTime(formats=["%Y-%m-%d"]), required=True,
              help="First day of the pay period.")
@click.option("--end", "pay_period_end", type=click.DateTime(formats=["%Y-%m-%d"]), required=True,
              help="Last day of the pay period.")
@click.option("--pay-date", type=click.DateTime(formats=["%Y-%m-%d"]), required=True)
@click.option("--run-number", help="Defaults to the next PR-YYYY-MM-NNN number.")
@click.option("--department", help="Only pay employees of this department.")
@click.pass_context
def run(ctx, pay_period_start, pay_period_end, pay_date, run_number, department):
    """Start and process a payroll run."""
    try:
        payroll_run = _service(ctx).start_payroll_run(
            pay_period_start.date(), pay_period_end.date(), pay_date.date(),
            run_number=run_number, department=department,
        )
    except PayrollError as e:
        raise click.ClickException(str(e))
    _print_run(payroll_run)


@cli.command()
@click.argument("run_id", type=int)
@click.pass_context
def resume(ctx, run_id):
    """Finish a run left in draft or processing."""
    try:
        payroll_run = _service(ctx).resume_payroll_run(run_id)
    except PayrollError as e:
        raise click.ClickException(str(e))
    _print_run(payroll_run)


@cli.command()
@click.argument("run_id", type=int)
@click.option("--type", "export_type", type=click.Choice([t.value for t in ExportType], case_sensitive=False),
              default=ExportType.ACH.value, show_default=True)
@click.pass_context
def export(ctx, run_id, export_type):
    """Generate the bank payment file for a completed run."""
    service = _service(ctx)
    try:
        export_file = service.generate_bank_export(run_id, export_type)
    except PayrollError as e:
        raise click.ClickException(str(e))
    click.echo(f"Wrote {service.output_dir / 'bank_exports' / export_file.file_name}")
    click.echo(f"  Transactions: {export_file.total_transactions}")
    click.echo(f"  Total:        {format_currency(export_file.total_amount)}")
    if export_file.skipped_for_export:
        click.echo(f"  Skipped (no bank details): {', '.join(export_file.skipped_for_export)}")


@cli.command()
@click.option("--pay-date", type=click.DateTime(formats=["%Y-%m-%d"]), help="Defaults to today.")
@click.option("--department")
@click.pass_context
def preview(ctx, pay_date, department):
    """Show payroll totals for current compensation without creating a run."""
    try:
        result = _service(ctx).preview_payroll(pay_date.date() if pay_date else None, department)
    except PayrollError as e:
        raise click.ClickException(str(e))
    click.echo(f"Preview for {result.pay_date}")
    click.echo(f"  Employees:   {result.total_employees}")
    click.echo(f"  Gross pay:   {format_currency(result.total_gross_pay)}")
    click.echo(f"  Deductions:  {format_currency(result.total_deductions)}")
    click.echo(f"  Net pay:     {format_currency(result.total_net_pay)}")
    for exception in result.exceptions:
        click.echo(f"  [{exception.kind}] {exception.employee_id}: {exception.reason}")


@cli.command()
@click.argument("run_id", type=int)
@click.option("--payslips", is_flag=True, help="Also write one workbook per payslip.")
@click.pass_context
def register(ctx, run_id, payslips):
    """Write the run register workbook."""
    service = _service(ctx)
    try:
        click.echo(f"Wrote {service.generate_register(run_id)}")
        if payslips:
            for payslip in service.list_payslips(run_id):
                click.echo(f"Wrote {service.generate_payslip_workbook(payslip.id)}")
    except PayrollError as e:
        raise click.ClickException(str(e))


@cli.command("annual-summary")
@click.argument("year", type=int)
@click.pass_context
def annual_summary(ctx, year):
    """Write the per-employee totals for a year."""
    try:
        click.echo(f"Wrote {_service(ctx).generate_annual_summary(year)}")
    except PayrollError as e:
        raise click.ClickException(str(e))


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=5000, show_default=True, type=int)
@click.pass_context
def serve(ctx, host, port):
    """Run the HTTP API."""
    from payrun.app import create_app

    init_db()
    logger.info("Starting payrun API on %s:%s", host, port)
    create_app(_service(ctx)).run(host=host, port=port)


if __name__ == "__main__":
    cli()
