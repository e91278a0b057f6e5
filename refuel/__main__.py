#!/usr/bin/env python3
"""
Refuel - Turn-by-turn guidance to nearby fuel stations

Usage:
    python -m refuel [station_id] [options]

Options:
    --list            List nearby stations and exit
    --lat LAT         Latitude to search around (default: Bogota)
    --lon LON         Longitude to search around
    --seed N          Seed for the generated station catalog
    --stations FILE   Load the station catalog from a JSON file
    --save-stations FILE  Save the station catalog to a JSON file
    --fixed           Report --lat/--lon as the device position (no GPS)
    --high-accuracy   Ask for a GPS-grade fix (slower)
    --simulate        Skip live tracking and walk through the trip
    --record FILE     Record GPS trace to JSON file for debugging
    --playback FILE   Playback GPS trace from JSON file
    --speed FACTOR    Playback speed multiplier (default: 1.0)
    --log FILE        Append log lines to FILE
    --html FILE       Write a map of the trip to an HTML file on exit
    --debug-gui       Run with web-based visual debugger (click map to move)
    --no-voice        Do not speak instructions
"""

import argparse
import asyncio
import random
import sys

from .app import Refuel
from .config import CONFIG
from .exceptions import CatalogError, StationNotFoundError
from .models import Coordinate
from .stations import StationDirectory


def _print_stations(directory: StationDirectory):
    print(f"{'ID':<12} {'Name':<28} {'Distance':>9} {'Price':>8} {'Rating':>6}")
    for station in directory:
        print(f"{station.id:<12} {station.name:<28} {station.distance:>9} "
              f"{station.price:>8} {station.rating:>6.1f}")


def main():
    parser = argparse.ArgumentParser(
        description="Turn-by-turn guidance to nearby fuel stations"
    )
    parser.add_argument("station", nargs="?", default=None,
                        help="Station id to navigate to (default: nearest)")
    parser.add_argument("--list", action="store_true", help="List nearby stations and exit")
    parser.add_argument("--lat", type=float, default=None, help="Latitude to search around")
    parser.add_argument("--lon", type=float, default=None, help="Longitude to search around")
    parser.add_argument("--seed", type=int, default=None, help="Seed for generated stations")
    parser.add_argument("--stations", metavar="FILE", help="Load station catalog from JSON")
    parser.add_argument("--save-stations", metavar="FILE", help="Save station catalog to JSON")
    parser.add_argument("--fixed", action="store_true",
                        help="Report --lat/--lon as the device position")
    parser.add_argument("--high-accuracy", action="store_true", help="Request a GPS-grade fix")
    parser.add_argument("--simulate", action="store_true", help="Walk through the trip")
    parser.add_argument("--record", metavar="FILE", help="Record GPS trace to JSON file")
    parser.add_argument("--playback", metavar="FILE", help="Playback GPS trace from JSON file")
    parser.add_argument("--speed", type=float, default=1.0,
                        help="Playback speed multiplier (default: 1.0)")
    parser.add_argument("--log", metavar="FILE", help="Log file")
    parser.add_argument("--html", metavar="FILE", help="Write trip map HTML on exit")
    parser.add_argument("--debug-gui", action="store_true", help="Run with web-based debugger")
    parser.add_argument("--no-voice", action="store_true", help="Do not speak instructions")

    args = parser.parse_args()

    if (args.lat is None) != (args.lon is None):
        parser.error("--lat and --lon must be given together")
    if args.fixed and args.lat is None:
        parser.error("--fixed requires --lat and --lon")
    if args.record and args.playback:
        parser.error("--record and --playback cannot be combined")

    if args.lat is not None:
        center = Coordinate(lat=args.lat, lon=args.lon)
    else:
        lat, lon = CONFIG["default_location"]
        center = Coordinate(lat=lat, lon=lon)

    try:
        if args.stations:
            directory = StationDirectory.load(args.stations)
        else:
            directory = StationDirectory.generate(center, rng=random.Random(args.seed))
    except CatalogError as e:
        print(f"Error: {e}")
        return 1

    if args.save_stations:
        directory.save(args.save_stations)
        print(f"Stations saved to {args.save_stations}")

    if args.list:
        _print_stations(directory)
        return 0

    if len(directory) == 0:
        print("No stations nearby")
        return 1

    station_id = args.station or next(iter(directory)).id

    app = Refuel(
        directory,
        log_path=args.log,
        high_accuracy=args.high_accuracy,
        simulate=args.simulate,
        fixed_location=center if args.fixed else None,
        record_path=args.record,
        playback_path=args.playback,
        speed=args.speed,
        html_output=args.html,
        debug_gui=args.debug_gui,
        voice=not args.no_voice,
    )

    try:
        asyncio.run(app.run(station_id))
    except StationNotFoundError as e:
        print(f"Error: {e}")
        print("Use --list to see nearby stations")
        return 1
    except KeyboardInterrupt:
        print("\nNavigation stopped")

    return 0


if __name__ == "__main__":
    sys.exit(main())
