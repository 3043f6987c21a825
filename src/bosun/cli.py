"""CLI interface for bosun"""

import logging
import sys
import warnings

import click

from bosun.core.cache import CacheStore
from bosun.core.config import DEFAULT_RUN_TTL_MINUTES, ENV_DESCRIPTIONS, Config
from bosun.core.dispatcher import ExecutionDispatcher
from bosun.core.engine import create_runtime, select_engine
from bosun.core.env import EnvManager
from bosun.core.errors import BosunError, UnimplementedError
from bosun.core.lister import ImageLister
from bosun.core.orchestrator import PullOrchestrator, StalenessPolicy
from bosun.core.reference import normalize

logger = logging.getLogger("bosun")

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


def fail(error: Exception) -> None:
    """Report a fatal error on one line and exit with status 1"""
    logger.error(str(error))
    sys.exit(1)


class Session:
    """Objects shared by the commands of one invocation"""

    def __init__(self, config: Config):
        self.config = config
        self._runtime = None
        self._cache = None

    @property
    def runtime(self):
        if self._runtime is None:
            self._runtime = create_runtime(select_engine(self.config.engine), self.config)
        return self._runtime

    @property
    def cache(self) -> CacheStore:
        if self._cache is None:
            self._cache = CacheStore(self.config.cache_dir)
        return self._cache

    def orchestrator(self) -> PullOrchestrator:
        return PullOrchestrator(self.runtime, self.cache)


@click.group(invoke_without_command=True)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug mode with verbose output and warnings",
)
@click.version_option(package_name="bosun")
@click.pass_context
def cli(ctx, debug):
    """bosun - pull, cache and run container images

    Uses singularity when available, docker otherwise.
    """
    try:
        config = Config()
    except BosunError as e:
        fail(e)

    ctx.obj = Session(config)

    if debug or config.debug:
        logging.getLogger().setLevel(logging.DEBUG)
    else:
        warnings.filterwarnings("ignore", category=DeprecationWarning)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command(context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False})
@click.option("-e", "--env", "env_vars", multiple=True, help="Set environment variable KEY=VALUE (repeatable)")
@click.option(
    "--env-file",
    multiple=True,
    type=click.Path(exists=True),
    help="Load environment variables from file (can be used multiple times)",
)
@click.option("-w", "--workdir", help="Working directory inside the container")
@click.option("-i", "--interactive", is_flag=True, help="Keep stdin open")
@click.option("-t", "--tty", is_flag=True, help="Allocate a pseudo-terminal")
@click.argument("image")
@click.argument("command", required=False)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_obj
def run(session: Session, env_vars: tuple, env_file: tuple, workdir: str, interactive: bool, tty: bool,
        image: str, command: str, args: tuple):
    """Run a command in an image, pulling it first if needed

    Examples:
        bosun run ubuntu:22.04 cat /etc/os-release
        bosun run -e THREADS=4 docker://quay.io/cyverse/kallisto:latest kallisto version
        bosun run ./kallisto.img
    """
    try:
        env_manager = EnvManager({})
        env = env_manager.load_files(env_file)
        env.update(env_manager.parse_assignments(env_vars))

        policy = StalenessPolicy.from_config(session.config, default_ttl_minutes=DEFAULT_RUN_TTL_MINUTES)
        dispatcher = ExecutionDispatcher(session.runtime, session.orchestrator(), policy)
        status = dispatcher.run(image, command, args, env=env, workdir=workdir,
                                interactive=interactive, tty=tty)
    except BosunError as e:
        fail(e)

    sys.exit(status)


@cli.command()
@click.option("-f", "--force", is_flag=True, help="Pull even if a fresh copy is cached")
@click.argument("image")
@click.pass_obj
def pull(session: Session, force: bool, image: str):
    """Pull an image into the cache

    Examples:
        bosun pull ubuntu:22.04
        bosun pull -f docker://quay.io/cyverse/kallisto:latest
        bosun pull shub://vsoch/hello-world
    """
    try:
        reference = normalize(image)
        policy = StalenessPolicy.from_config(session.config, forced=force)
        path = session.orchestrator().pull(reference, policy)
    except BosunError as e:
        fail(e)

    click.echo(str(path))
    sys.exit(0)


@cli.command()
@click.option("--native", is_flag=True, help="List the engine's own image store instead of the cache")
@click.argument("pattern", required=False)
@click.pass_obj
def images(session: Session, native: bool, pattern: str):
    """List cached images, newest first

    Examples:
        bosun images
        bosun images kallisto
    """
    try:
        if native:
            for line in session.runtime.list_native():
                click.echo(line)
            sys.exit(0)

        rows = [("REPOSITORY", "TAG", "IMAGE ID", "CREATED", "SIZE")]
        for record in ImageLister(session.cache).list(pattern):
            rows.append((record.repository, record.tag, record.short_hash, record.age, record.size))
    except BosunError as e:
        fail(e)

    widths = [max(len(row[i]) for row in rows) for i in range(len(rows[0]))]
    for row in rows:
        click.echo("   ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip())
    sys.exit(0)


@cli.command(context_settings={"ignore_unknown_options": True})
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def remove(args: tuple):
    """Remove a cached image (not implemented)"""
    fail(UnimplementedError("remove is not implemented"))


@cli.command(context_settings={"ignore_unknown_options": True})
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def build(args: tuple):
    """Build an image (not implemented)"""
    fail(UnimplementedError("build is not implemented"))


cli.add_command(remove, name="rm")


@cli.command()
@click.pass_obj
def config(session: Session):
    """Show recognized environment variables and their effective values"""
    try:
        effective = session.config.effective()
    except BosunError as e:
        fail(e)

    values = session.config.describe()
    for var, description in ENV_DESCRIPTIONS.items():
        click.echo(f"{var}={values.get(var, '')}")
        click.echo(f"    {description}")
        click.echo(f"    effective: {effective[var]}")
    sys.exit(0)


@cli.command()
@click.pass_context
def usage(ctx):
    """Show this help"""
    click.echo(ctx.parent.get_help())
    sys.exit(0)


def main():
    """Entry point for CLI"""
    cli()


if __name__ == "__main__":
    main()
