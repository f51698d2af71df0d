"""Command line entry point.

``surveysim preview`` prints the path a pattern would produce for an area;
``surveysim run`` simulates a mission and shows its progress.
"""

import argparse
import json
import logging
from pathlib import Path
import sys
import time

from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from surveysim.config import SimulationConfig
from surveysim.exceptions import ConfigurationError, EmptyPathError
from surveysim.geo import SurveyArea
from surveysim.log import CONSOLE, configure_logging
from surveysim.mission import FlightPattern, MissionDescriptor, PathGenerator, PathParameters
from surveysim.repository import InMemoryMissionRepository
from surveysim.simulator import (
    MISSION_PROGRESS,
    ManualScheduler,
    MissionSimulationController,
    ThreadingScheduler,
)
from surveysim.transport import InMemoryTelemetryPublisher, mission_topic
from surveysim.vehicles import DEFAULT_CRUISE_ALTITUDE, DEFAULT_CRUISE_SPEED

logger = logging.getLogger(__name__)

ADHOC_MISSION_ID = "adhoc"


def _load_area(path: str) -> SurveyArea:
    try:
        document = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        msg = f"Cannot read survey area from {path}: {e}"
        raise ConfigurationError(msg) from e
    if isinstance(document, dict) and document.get("type") == "FeatureCollection":
        document = (document.get("features") or [{}])[0]
    return SurveyArea.from_geojson(document)


def _path_params(args: argparse.Namespace) -> PathParameters:
    try:
        return PathParameters(
            base_spacing_m=args.spacing,
            overlap=args.overlap,
            smoothing=not args.no_smoothing,
            laps=args.laps,
        )
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def preview(args: argparse.Namespace) -> int:
    area = _load_area(args.area)
    pattern = FlightPattern.parse(args.pattern)
    path = PathGenerator().generate(area, pattern, _path_params(args))
    if not path:
        CONSOLE.print(f"[red]No waypoints generated for {pattern.value}")
        return 1

    box = area.bounding_box()
    summary = Table(title=f"{pattern.value} pattern", show_header=False)
    summary.add_row("Description", PathGenerator.describe(pattern))
    summary.add_row("Waypoints", str(len(path)))
    summary.add_row("Path length", f"{path.total_distance():.1f} m")
    summary.add_row(
        "Bounding box",
        f"{box.min_lat:.6f}, {box.min_lng:.6f} -> {box.max_lat:.6f}, {box.max_lng:.6f}",
    )
    CONSOLE.print(summary)

    points = Table("#", "Latitude", "Longitude")
    for wp in path.waypoints[: args.limit]:
        points.add_row(str(wp.index), f"{wp.latitude:.7f}", f"{wp.longitude:.7f}")
    if len(path) > args.limit:
        points.add_row("...", "", "")
    CONSOLE.print(points)

    if args.output:
        Path(args.output).write_text(json.dumps(path.to_list(), indent=2), encoding="utf-8")
        CONSOLE.print(f"[green]Wrote {len(path)} waypoints to {args.output}")
    return 0


def _repository(args: argparse.Namespace) -> tuple[InMemoryMissionRepository, str]:
    if args.missions:
        if not args.mission_id:
            msg = "--mission-id is required with --missions"
            raise ConfigurationError(msg)
        return InMemoryMissionRepository.from_file(args.missions), args.mission_id

    if not args.area:
        msg = "Either --missions or --area is required"
        raise ConfigurationError(msg)
    descriptor = MissionDescriptor(
        mission_id=ADHOC_MISSION_ID,
        drone_id=args.drone_id,
        survey_area=_load_area(args.area),
        pattern=FlightPattern.parse(args.pattern),
        speed=args.speed,
        altitude=args.altitude,
        path_params=_path_params(args),
    )
    return InMemoryMissionRepository([descriptor]), ADHOC_MISSION_ID


def run(args: argparse.Namespace) -> int:
    repository, mission_id = _repository(args)
    publisher = InMemoryTelemetryPublisher()
    config = SimulationConfig(time_scale=args.time_scale)
    scheduler = ThreadingScheduler() if args.realtime else ManualScheduler()
    controller = MissionSimulationController(
        repository, publisher, config=config, scheduler=scheduler
    )

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(bar_width=40),
        TextColumn("{task.percentage:>5.1f}%"),
        TextColumn("ETA {task.fields[eta]}"),
        TimeElapsedColumn(),
        console=CONSOLE,
    ) as progress:
        task = progress.add_task(f"[green]Mission {mission_id}", total=100.0, eta="-")

        def on_event(topic, event_name, payload):
            if event_name == MISSION_PROGRESS:
                progress.update(
                    task, completed=payload["percentage"], eta=f"{payload['eta']:.0f}s"
                )

        publisher.subscribe(mission_topic(mission_id), on_event)
        pattern = args.pattern if args.missions and args.pattern_override else None
        controller.start(mission_id, pattern)

        try:
            if isinstance(scheduler, ManualScheduler):
                scheduler.run_until_idle()
            else:
                while controller.is_running(mission_id):
                    time.sleep(0.1)
        except KeyboardInterrupt:
            controller.stop(mission_id)

    for outcome in repository.outcomes(mission_id):
        CONSOLE.print(
            f"Mission {mission_id}: [bold]{outcome.status.value}[/bold] ({outcome.reason}), "
            f"progress {outcome.progress:.1f}%, battery {outcome.battery:.1f}%, "
            f"flown {outcome.distance_flown:.0f} m"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="surveysim", description="Survey flight simulator")
    parser.add_argument("--log-level", default="WARNING")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_path_options(p: argparse.ArgumentParser) -> None:
        p.add_argument("--pattern", default=FlightPattern.GRID.value,
                       choices=[pattern.value for pattern in FlightPattern])
        p.add_argument("--spacing", type=float, default=PathParameters.base_spacing_m,
                       help="base line spacing in metres")
        p.add_argument("--overlap", type=float, default=PathParameters.overlap)
        p.add_argument("--laps", type=int, default=PathParameters.laps)
        p.add_argument("--no-smoothing", action="store_true")

    p_preview = sub.add_parser("preview", help="print the generated flight path")
    p_preview.add_argument("area", help="GeoJSON polygon file")
    add_path_options(p_preview)
    p_preview.add_argument("--limit", type=int, default=10)
    p_preview.add_argument("--output", help="write waypoints as JSON")
    p_preview.set_defaults(func=preview)

    p_run = sub.add_parser("run", help="simulate a mission")
    p_run.add_argument("--area", help="GeoJSON polygon file for an ad-hoc mission")
    p_run.add_argument("--missions", help="JSON mission file")
    p_run.add_argument("--mission-id")
    p_run.add_argument("--pattern-override", action="store_true",
                       help="use --pattern instead of the mission file's pattern")
    p_run.add_argument("--drone-id", default="drone-1")
    p_run.add_argument("--speed", type=float, default=DEFAULT_CRUISE_SPEED)
    p_run.add_argument("--altitude", type=float, default=DEFAULT_CRUISE_ALTITUDE)
    p_run.add_argument("--realtime", action="store_true", help="tick on the wall clock")
    p_run.add_argument("--time-scale", type=float, default=1.0)
    add_path_options(p_run)
    p_run.set_defaults(func=run)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level.upper())
    try:
        return args.func(args)
    except (ConfigurationError, EmptyPathError) as e:
        CONSOLE.print(f"[red]{e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
