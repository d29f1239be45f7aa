# cli.py
from __future__ import annotations

import sys
from typing import Tuple

import click

from buildgraph.config import LoadedConfig, Settings, discover_config, load_config
from buildgraph.dispatcher import CommandDispatcher
from buildgraph.errors import CONFIG_EXIT_CODE, INTERRUPTED_EXIT_CODE, BuildGraphError
from buildgraph.model import Action
from buildgraph.orchestrator import Orchestrator
from buildgraph.planner import TaskPlanner
from buildgraph.ui.console import Console, get_console, set_console


def _load(ctx) -> LoadedConfig:
    """Load the config once per invocation; config errors exit before any command runs."""
    console = get_console()
    if "loaded" in ctx.obj:
        return ctx.obj["loaded"]
    try:
        path = discover_config(ctx.obj.get("config"))
        loaded = load_config(path)
    except BuildGraphError as e:
        console.print_error(
            "Invalid configuration",
            str(e),
            suggestion="Create buildgraph.yaml or specify one explicitly:\n  buildgraph --config products.yaml build",
        )
        sys.exit(CONFIG_EXIT_CODE)
    console.print_debug(f"Loaded {len(loaded.graph)} submodule(s) from {loaded.path}")
    ctx.obj["loaded"] = loaded
    return loaded


def _run_action(ctx, action: Action, targets: Tuple[str, ...], dry_run: bool) -> None:
    console = get_console()
    loaded = _load(ctx)
    graph = loaded.graph

    try:
        plan = TaskPlanner(graph).plan_many(action, list(targets) or None)
    except BuildGraphError as e:
        console.print_error("Cannot plan", str(e))
        sys.exit(CONFIG_EXIT_CODE)

    # credentials are read exactly once, right before dispatching
    settings = Settings.from_env(loaded.config.registry)
    dispatcher = CommandDispatcher(
        base_dir=loaded.base_dir,
        env=settings.command_env(),
        product_env={p.name: p.properties for p in graph.products()},
        sink=console.print_output,
        timeout=ctx.obj.get("timeout"),
    )

    console.print_run_started(config=loaded.path.name, action=action.value, step_count=len(plan))
    console.print_plan(plan)

    result = Orchestrator(dispatcher, console).execute(plan, dry_run=dry_run)

    console.print_results(result)
    if result.exit_code != 0:
        sys.exit(result.exit_code)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.option("--config", "config_path", default=None, help="Config file (defaults to buildgraph.yaml if present)")
@click.option("--quiet", is_flag=True, default=False, help="Do not echo command output")
@click.option("--timeout", default=None, type=float, help="Per-step timeout in seconds (default: none)")
@click.pass_context
def cli(ctx, debug, config_path, quiet, timeout):
    """buildgraph: ordered build, pack and publish for layered products."""
    console = Console(debug=debug, quiet=quiet)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["config"] = config_path
    ctx.obj["timeout"] = timeout


def _action_command(action: Action, help_text: str):
    @click.argument("targets", nargs=-1)
    @click.option("--dry-run", is_flag=True, default=False, help="Print the plan without running it")
    @click.pass_context
    def command(ctx, targets, dry_run):
        console = get_console()
        try:
            _run_action(ctx, action, targets, dry_run)
        except KeyboardInterrupt:
            console.print_info("\nInterrupted by user")
            sys.exit(INTERRUPTED_EXIT_CODE)
        except Exception as e:
            console.print_exception(e)
            sys.exit(1)

    command.__doc__ = help_text
    return cli.command(name=action.value)(command)


build = _action_command(Action.BUILD, "Build TARGETS (product, product/submodule or alias) and their prerequisites.")
pack = _action_command(Action.PACK, "Pack TARGETS after building their prerequisites.")
push_local = _action_command(Action.PUSH_LOCAL, "Build, pack and publish TARGETS to the local repository.")
clean = _action_command(Action.CLEAN, "Delete the build output of TARGETS.")


@cli.command(name="plan")
@click.argument("action")
@click.argument("targets", nargs=-1)
@click.pass_context
def plan_cmd(ctx, action, targets):
    """Print the execution plan for ACTION on TARGETS without running it."""
    console = get_console()
    loaded = _load(ctx)
    try:
        plan = TaskPlanner(loaded.graph).plan_many(Action.parse(action), list(targets) or None)
    except (BuildGraphError, ValueError) as e:
        console.print_error("Cannot plan", str(e))
        sys.exit(CONFIG_EXIT_CODE)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)
    console.print_plan(plan)


@cli.command(name="graph")
@click.pass_context
def graph_cmd(ctx):
    """List products, submodules, prerequisites and supported actions."""
    console = get_console()
    graph = _load(ctx).graph
    try:
        for product in graph.products():
            console.print_header(product.name)
            for sub in product.submodules:
                actions = ", ".join(a.value for a in Action if sub.supports(a))
                needs = ", ".join(sub.needs) or "-"
                console.print_info(f"  {sub.name} [{sub.kind.value}] needs: {needs} | actions: {actions}")
            for alias, target in product.aliases.items():
                console.print_info(f"  alias {alias} -> {product.name}/{target}")
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


if __name__ == "__main__":
    cli()
