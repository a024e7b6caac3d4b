import click, logging, pathlib
from dotenv import load_dotenv

from . import context
from .errors import CoordinatorError
from .lifecycle import clean_orphaned_chrome, stop_all as stop_all_instances, stop_instance
from .ports import allocate
from .procs import get_ops
from .profile_lock import read_lock, remove_lock
from .registry import clean_stale_instances, format_status_table, list_instances

load_dotenv()

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")


def _fail(message):
    click.echo(f"Error: {message}", err=True)
    raise SystemExit(1)


@click.group()
def cli():
    pass


@cli.command()
def status():
    """Show running instances (stale records are pruned first)."""
    for info in clean_stale_instances():
        click.echo(
            f"Cleaned stale instance on port {info.port} (PID {info.pid} no longer running)"
        )
    click.echo(format_status_table(list_instances()))


@cli.command()
@click.argument("port", type=click.IntRange(1, 65535))
@click.option("--grace", type=float, default=None, help="Seconds to wait after SIGTERM.")
def stop(port, grace):
    """Stop the instance registered on PORT."""
    result = stop_instance(port, grace=grace)
    click.echo(result.message)
    if not result.success:
        raise SystemExit(1)


@cli.command("stop-all")
@click.option("--grace", type=float, default=None, help="Seconds to wait after SIGTERM.")
def stop_all(grace):
    """Stop every registered instance."""
    results = stop_all_instances(grace=grace)
    if not results:
        click.echo("No dev-browser-skill instances running.")
        return
    for result in results:
        click.echo(result.message)
    if not all(r.success for r in results):
        raise SystemExit(1)


@cli.command("clean-orphans")
@click.option("--marker", default=None, help="Command-line fragment identifying our browsers.")
def clean_orphans(marker):
    """Kill browser processes left behind by crashed instances."""
    count = clean_orphaned_chrome(marker)
    click.echo(f"Killed {count} orphaned browser process(es).")


@cli.command()
@click.option("--port", "-p", type=int, default=None, help="Preferred HTTP port.")
@click.option("--cdp-port", type=int, default=None, help="Explicit CDP port (no auto-selection).")
def ports(port, cdp_port):
    """Print the port pair a new instance would get."""
    try:
        selection = allocate(context.resolve_port(port), cdp_port)
    except CoordinatorError as exc:
        _fail(exc)
    suffix = " (auto-selected)" if selection.was_auto_selected else ""
    click.echo(f"HTTP {selection.port}  CDP {selection.cdp_port}{suffix}")


@cli.command()
@click.argument("profile_dir", type=click.Path(file_okay=False, path_type=pathlib.Path))
def unlock(profile_dir):
    """Remove PROFILE_DIR's lock if its owner is gone."""
    lock = read_lock(profile_dir)
    if lock is None:
        remove_lock(profile_dir)
        click.echo(f"No valid lock in {profile_dir}.")
        return
    if get_ops().exists(lock.pid):
        _fail(f"{profile_dir} is held by live PID {lock.pid} (port {lock.port}).")
    remove_lock(profile_dir)
    click.echo(f"Removed stale lock of PID {lock.pid} from {profile_dir}.")


if __name__ == "__main__":
    cli()
