"""
Command-line interface for the pass predictor.

This module provides a CLI for finding satellite passes over a ground
station and the eclipse transitions of a satellite over a time window.
"""

from datetime import timedelta
from typing import Optional
import asyncio
import json
import logging
import sys

import click
from tabulate import tabulate

from .config import load_config
from .geometry import GroundStation
from .orbit import SatelliteOrbit
from .parallel import ParallelDispatcher
from .predictor import PassPredictor
from .utils import format_duration, get_current_utc, parse_datetime, setup_logging

logger = logging.getLogger(__name__)


@click.group()
@click.option('--log-level', default='INFO',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              help='Set logging level')
@click.option('--log-file', type=click.Path(), help='Log file path')
@click.option('--config', 'config_path', type=click.Path(),
              help='YAML configuration file (default: $PASS_PREDICTOR_CONFIG)')
@click.pass_context
def main(ctx: click.Context, log_level: str, log_file: Optional[str], config_path: Optional[str]) -> None:
    """Satellite Pass Predictor - passes over a ground station and eclipse timing."""
    setup_logging(log_level, log_file)
    ctx.ensure_object(dict)
    ctx.obj['config'] = load_config(config_path)


def _load_satellite(tle: str, satellite: str) -> SatelliteOrbit:
    click.echo(f"Loading satellite '{satellite}' from {tle}", err=True)
    return SatelliteOrbit.from_tle_file(tle, satellite)


@main.command()
@click.option('--tle', required=True, type=click.Path(exists=True),
              help='Path to TLE file')
@click.option('--satellite', required=True,
              help='Satellite name (must match name in TLE file)')
@click.option('--lat', 'latitude', required=True, type=float,
              help='Ground station latitude in degrees')
@click.option('--lon', 'longitude', required=True, type=float,
              help='Ground station longitude in degrees')
@click.option('--height', default=0.0, type=float,
              help='Ground station height in metres (default: 0)')
@click.option('--start-time', type=str,
              help='Start time (YYYY-MM-DD HH:MM:SS UTC, default: now)')
@click.option('--duration', default=48.0, type=float,
              help='Search duration in hours (default: 48)')
@click.option('--min-elevation', type=float,
              help='Minimum elevation in degrees (default from config: 5.0)')
@click.option('--swath-km', type=float,
              help='Use the swath criterion with this full swath width (km)')
@click.option('--max-passes', type=int,
              help='Maximum number of passes (default from config: 50)')
@click.option('--parallel', is_flag=True,
              help='Dispatch through the worker pool')
@click.option('--format', 'output_format', default='table',
              type=click.Choice(['table', 'json']),
              help='Output format')
@click.pass_context
def passes(
    ctx: click.Context,
    tle: str,
    satellite: str,
    latitude: float,
    longitude: float,
    height: float,
    start_time: Optional[str],
    duration: float,
    min_elevation: Optional[float],
    swath_km: Optional[float],
    max_passes: Optional[int],
    parallel: bool,
    output_format: str
) -> None:
    """Find passes of a satellite over a ground station.

    Example:
    passes --tle data.tle --satellite "ISS" --lat 48.14 --lon 11.58 --duration 72
    """
    config = ctx.obj['config']

    try:
        start_dt = parse_datetime(start_time) if start_time else get_current_utc()
        end_dt = start_dt + timedelta(hours=duration)
        sat = _load_satellite(tle, satellite)
        station = GroundStation(latitude, longitude, height)

        if parallel:
            with ParallelDispatcher(config) as dispatcher:
                found = asyncio.run(dispatcher.compute_passes(
                    sat.tle_lines, station, start_dt, end_dt,
                    min_elevation_deg=min_elevation,
                    max_passes=max_passes,
                    swath_km=swath_km,
                ))
        else:
            predictor = PassPredictor(config)
            if swath_km is not None:
                found, _ = predictor.find_swath_passes(
                    sat.tle_lines, station, swath_km, start_dt, end_dt, max_passes=max_passes
                )
            else:
                found, _ = predictor.find_passes(
                    sat.tle_lines, station, start_dt, end_dt,
                    min_elevation_deg=min_elevation, max_passes=max_passes
                )

        if output_format == 'json':
            click.echo(json.dumps([p.to_dict() for p in found], indent=2))
            return

        click.echo(f"\n=== Passes of {sat.satellite_name} ===")
        click.echo(f"Window: {start_dt.strftime('%Y-%m-%d %H:%M:%S')} UTC + {duration:g} h")
        if not found:
            click.echo("No passes found")
            return

        table = []
        for p in found:
            table.append([
                p.start_time.strftime('%Y-%m-%d %H:%M:%S'),
                format_duration(p.duration.total_seconds()),
                f"{p.max_elevation:.1f}°",
                f"{p.azimuth_start:.0f}° → {p.azimuth_apex:.0f}° → {p.azimuth_end:.0f}°",
                "eclipsed" if p.satellite_eclipsed_at_start else "sunlit",
                "dark" if p.ground_station_dark_at_start else "daylight",
                len(p.eclipse_transitions),
            ])
        click.echo(tabulate(
            table,
            headers=["Start (UTC)", "Duration", "Max Elev", "Azimuth", "Satellite", "Station", "Transitions"],
            tablefmt="grid",
        ))
        click.echo(f"Total passes: {len(found)}")

    except Exception as e:
        logger.error(f"Pass prediction failed: {e}")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.option('--tle', required=True, type=click.Path(exists=True),
              help='Path to TLE file')
@click.option('--satellite', required=True,
              help='Satellite name (must match name in TLE file)')
@click.option('--start-time', type=str,
              help='Start time (YYYY-MM-DD HH:MM:SS UTC, default: now)')
@click.option('--duration', default=6.0, type=float,
              help='Scan duration in hours (default: 6)')
@click.option('--step', default=None, type=float,
              help='Scan step in seconds (default from config: 30)')
@click.option('--format', 'output_format', default='table',
              type=click.Choice(['table', 'json']),
              help='Output format')
@click.pass_context
def eclipses(
    ctx: click.Context,
    tle: str,
    satellite: str,
    start_time: Optional[str],
    duration: float,
    step: Optional[float],
    output_format: str
) -> None:
    """List shadow entries and exits of a satellite."""
    config = ctx.obj['config']

    try:
        start_dt = parse_datetime(start_time) if start_time else get_current_utc()
        end_dt = start_dt + timedelta(hours=duration)
        sat = _load_satellite(tle, satellite)

        predictor = PassPredictor(config)
        transitions = predictor.find_eclipse_transitions(sat.tle_lines, start_dt, end_dt, step)

        if output_format == 'json':
            click.echo(json.dumps([t.to_dict() for t in transitions], indent=2))
            return

        click.echo(f"\n=== Eclipse transitions of {sat.satellite_name} ===")
        if transitions:
            click.echo(tabulate(
                [
                    [t.time.strftime('%Y-%m-%d %H:%M:%S'),
                     "enters shadow" if t.to_shadow else "exits shadow"]
                    for t in transitions
                ],
                headers=["Time (UTC)", "Event"],
                tablefmt="grid",
            ))
        click.echo(f"Total transitions: {len(transitions)}")

    except Exception as e:
        logger.error(f"Eclipse scan failed: {e}")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
