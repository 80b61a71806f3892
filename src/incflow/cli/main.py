"""Command-line interface for the incflow solver.

Usage:
    incflow simulate config.json --steps=100
    incflow verify config.json
    incflow presets
    incflow preset poiseuille -o poiseuille.json
"""

from __future__ import annotations

import logging
import sys

import click


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """incflow: incompressible flow with a predictor-corrector projection method."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@cli.command()
@click.argument("config_file", type=click.Path(exists=True))
@click.option("--steps", type=int, default=None, help="Max timesteps (default: run to termination).")
@click.option("--restart", type=click.Path(exists=True), default=None, help="Restart from checkpoint.")
@click.option("--output-dir", type=str, default=None, help="Override the output directory.")
def simulate(
    config_file: str,
    steps: int | None,
    restart: str | None,
    output_dir: str | None,
) -> None:
    """Run a simulation from a configuration file."""
    from incflow.config import SimulationConfig
    from incflow.core.bases import SolverConvergenceError
    from incflow.engine import SimulationEngine

    click.echo(f"Loading config from {config_file}")
    config = SimulationConfig.from_file(config_file)

    if output_dir:
        config.output.output_dir = output_dir

    engine = SimulationEngine(config)

    if restart:
        click.echo(f"Restarting from checkpoint: {restart}")
        engine.load_from_checkpoint(restart)

    try:
        summary = engine.run(max_steps=steps)
    except SolverConvergenceError as exc:
        click.echo(f"Fatal solver failure at step {engine.clock.nstep + 1}: {exc}", err=True)
        sys.exit(1)

    click.echo("\n--- Simulation Summary ---")
    for key, val in summary.items():
        if isinstance(val, float):
            click.echo(f"  {key}: {val:.6e}")
        else:
            click.echo(f"  {key}: {val}")


@cli.command()
@click.argument("config_file", type=click.Path(exists=True))
def verify(config_file: str) -> None:
    """Verify a configuration file is valid."""
    from incflow.config import SimulationConfig

    try:
        config = SimulationConfig.from_file(config_file)
    except (ValueError, OSError) as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)

    tc = config.time
    click.echo("Configuration is valid:")
    click.echo(f"  Grid: {config.grid.n_cell}, dx = {config.grid.dx}")
    click.echo(f"  Levels: {config.amr.max_level + 1} (ref_ratio {config.amr.ref_ratio})")
    click.echo(f"  Fluid: {config.fluid.describe()}")
    click.echo(
        f"  Time: cfl={tc.cfl}, stop_time={tc.stop_time}, max_step={tc.max_step}, "
        f"steady_state={tc.steady_state}"
    )


@cli.command()
def presets() -> None:
    """List the available configuration presets."""
    from incflow.presets import list_presets

    for info in list_presets():
        click.echo(f"  {info['name']:<22} {info['description']}")


@cli.command()
@click.argument("name")
@click.option("--output", "-o", type=click.Path(), default=None, help="Write the preset to a JSON file.")
def preset(name: str, output: str | None) -> None:
    """Print (or write) a preset configuration as JSON."""
    from incflow.config import SimulationConfig
    from incflow.presets import get_preset

    try:
        config = SimulationConfig(**get_preset(name))
    except KeyError as exc:
        click.echo(str(exc.args[0]), err=True)
        sys.exit(1)

    if output:
        config.to_json(output)
        click.echo(f"Wrote preset '{name}' to {output}")
    else:
        click.echo(config.to_json())


if __name__ == "__main__":
    cli()
