"""Main CLI entry point."""

import signal
import sys
import threading
import time
from typing import Dict, List, Optional, Tuple

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from aws_converge.config.parser import Config, ConfigValidationError
from aws_converge.provisioners import PROVISIONERS, BaseProvisioner, ChangeType, ProvisionPlan, Resource
from aws_converge.utils.aws_client import AWSClientManager
from aws_converge.utils.errors import ErrorContext, ResourceError, error_handler
from aws_converge.utils.logging import LogContext, get_logger, setup_logging

console = Console()
logger = get_logger(__name__)

CHANGE_STYLES = {
    ChangeType.CREATE: '[green]+ create[/green]',
    ChangeType.UPDATE: '[yellow]~ update[/yellow]',
    ChangeType.REPLACE: '[magenta]-/+ replace[/magenta]',
    ChangeType.DELETE: '[red]- delete[/red]',
    ChangeType.NO_CHANGE: '[dim]no change[/dim]',
}


@click.group()
@click.option('--profile', help='AWS profile to use')
@click.option('--region', help='AWS region (overrides the manifest)')
@click.option('--log-level', default='info', type=click.Choice(['debug', 'info', 'warning', 'error']))
@click.option('--log-dir', default=None, help='Directory for JSON-lines log files')
@click.pass_context
def cli(ctx, profile, region, log_level, log_dir):
    """Converge ElastiCache and App Runner resources to a declared state."""
    ctx.ensure_object(dict)
    ctx.obj['profile'] = profile
    ctx.obj['region'] = region

    setup_logging(log_level, log_dir, console=console)


def load_config(config_path: str) -> Config:
    """Load and validate the manifest, exiting on error."""
    try:
        return Config(config_path).load()
    except FileNotFoundError:
        console.print(f"[red]Error:[/red] Configuration file not found: {config_path}")
        sys.exit(1)
    except ConfigValidationError as e:
        console.print("[red]Configuration validation failed:[/red]\n")
        console.print(str(e), markup=False)
        sys.exit(1)


class Session:
    """Provisioners for one CLI run, created on first use."""

    def __init__(self, ctx_obj: dict, config: Config, cancel_event: Optional[threading.Event] = None):
        self.manager = AWSClientManager(
            profile=ctx_obj.get('profile'),
            region=ctx_obj.get('region') or config.region,
        )
        self.cancel_event = cancel_event
        self._provisioners: Dict[str, BaseProvisioner] = {}

    def provisioner(self, resource: Resource) -> BaseProvisioner:
        if resource.type not in self._provisioners:
            provisioner_class = PROVISIONERS[resource.type]
            self._provisioners[resource.type] = provisioner_class(
                self.manager.session,
                boto_config=self.manager.boto_config,
                cancel_event=self.cancel_event,
            )
        return self._provisioners[resource.type]

    def plan(self, resources: List[Resource]) -> List[Tuple[BaseProvisioner, ProvisionPlan]]:
        plans = []
        for resource in resources:
            provisioner = self.provisioner(resource)
            current = provisioner.get_current_state(resource.id)
            plans.append((provisioner, provisioner.plan(resource, current)))
        return plans


def _report(error: Exception, resource: Optional[Resource], operation: str) -> ResourceError:
    context = ErrorContext(
        resource_id=resource.id if resource else None,
        resource_type=resource.type if resource else None,
        operation=operation,
    )
    converted = error_handler.handle_exception(error, context)
    error_handler.log_error(converted)
    console.print(Panel(Text(converted.to_user_message()), title='[red]Error[/red]', border_style='red'))
    return converted


def connect(ctx_obj: dict, config: Config, cancel_event: Optional[threading.Event] = None) -> Session:
    """Open a session and check its credentials, exiting on error."""
    session = Session(ctx_obj, config, cancel_event)
    try:
        credentials = session.manager.validate_credentials()
    except Exception as e:
        _report(e, None, 'validate_credentials')
        sys.exit(1)

    console.print(f"[dim]Account {credentials.account_id}, region {credentials.region}[/dim]")
    return session


def _cancel_on_sigterm(cancel_event: threading.Event) -> None:
    def handler(signum, frame):
        logger.warning("Received SIGTERM, cancelling waits in progress")
        cancel_event.set()
    signal.signal(signal.SIGTERM, handler)


def _plan_table(plans: List[Tuple[BaseProvisioner, ProvisionPlan]]) -> Table:
    table = Table(title='Planned changes')
    table.add_column('Resource', style='cyan')
    table.add_column('Type')
    table.add_column('Change')
    table.add_column('Details', style='dim')

    for _, resource_plan in plans:
        table.add_row(
            resource_plan.resource.id,
            resource_plan.resource.type,
            CHANGE_STYLES[resource_plan.change_type],
            ', '.join(resource_plan.reasons),
        )
    return table


@cli.command()
@click.option('-f', '--file', 'config_path', default='converge.yaml', show_default=True,
              help='Manifest file')
def validate(config_path: str):
    """Validate a manifest without calling AWS."""
    config = load_config(config_path)
    resources = config.resources()

    table = Table(title=f'{config_path}')
    table.add_column('Resource', style='cyan')
    table.add_column('Type')
    for resource in resources:
        table.add_row(resource.id, resource.type)

    console.print(table)
    console.print(f"[green]Manifest is valid[/green] ({len(resources)} resource(s))")


@cli.command()
@click.option('-f', '--file', 'config_path', default='converge.yaml', show_default=True,
              help='Manifest file')
@click.pass_context
def plan(ctx, config_path: str):
    """Show what apply would change."""
    config = load_config(config_path)
    session = connect(ctx.obj, config)

    try:
        plans = session.plan(config.resources())
    except Exception as e:
        _report(e, None, 'plan')
        sys.exit(1)

    console.print(_plan_table(plans))


@cli.command()
@click.option('-f', '--file', 'config_path', default='converge.yaml', show_default=True,
              help='Manifest file')
@click.pass_context
def apply(ctx, config_path: str):
    """Create, update or replace resources to match the manifest."""
    config = load_config(config_path)
    cancel_event = threading.Event()
    _cancel_on_sigterm(cancel_event)
    session = connect(ctx.obj, config, cancel_event)

    try:
        plans = session.plan(config.resources())
    except Exception as e:
        _report(e, None, 'plan')
        sys.exit(1)

    console.print(_plan_table(plans))

    failed = 0
    for provisioner, resource_plan in plans:
        if resource_plan.change_type == ChangeType.NO_CHANGE:
            continue

        resource = resource_plan.resource
        operation = resource_plan.change_type.value
        started = time.monotonic()
        with LogContext(resource_id=resource.id, resource_type=resource.type, operation=operation):
            try:
                result = provisioner.provision(resource_plan)
            except Exception as e:
                _report(e, resource, operation)
                failed += 1
                if cancel_event.is_set():
                    break
                continue

            logger.info(
                f"{operation} complete",
                extra={'duration': round(time.monotonic() - started, 2)},
            )
        console.print(f"[green]✓[/green] {resource.id} ({operation}) -> {result.physical_id}")

    if failed:
        console.print(f"[red]{failed} resource(s) failed[/red]")
        sys.exit(1)
    console.print("[green]Apply complete[/green]")


@cli.command()
@click.option('-f', '--file', 'config_path', default='converge.yaml', show_default=True,
              help='Manifest file')
@click.confirmation_option(prompt='Destroy every resource declared in the manifest?')
@click.pass_context
def destroy(ctx, config_path: str):
    """Delete every resource declared in the manifest."""
    config = load_config(config_path)
    cancel_event = threading.Event()
    _cancel_on_sigterm(cancel_event)
    session = connect(ctx.obj, config, cancel_event)

    failed = 0
    for resource in reversed(config.resources()):
        provisioner = session.provisioner(resource)
        with LogContext(resource_id=resource.id, resource_type=resource.type, operation='delete'):
            try:
                current = provisioner.get_current_state(resource.id)
                if current is None:
                    console.print(f"[dim]{resource.id} does not exist[/dim]")
                    continue
                provisioner.destroy(current)
            except Exception as e:
                _report(e, resource, 'delete')
                failed += 1
                if cancel_event.is_set():
                    break
                continue
        console.print(f"[red]-[/red] {resource.id} deleted")

    if failed:
        console.print(f"[red]{failed} resource(s) failed[/red]")
        sys.exit(1)
    console.print("[green]Destroy complete[/green]")


if __name__ == '__main__':
    cli()
