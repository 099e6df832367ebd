#!/usr/bin/env python3
"""Sunrise alarm daemon and command line."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path

try:
    from sunrise.alarm.app import SunriseApp
except ModuleNotFoundError:
    repo_dir = Path(__file__).resolve().parents[1]
    if str(repo_dir) not in sys.path:
        sys.path.insert(0, str(repo_dir))
    from sunrise.alarm.app import SunriseApp

from sunrise.config import SunriseConfig
from sunrise.datetime_utils import format_time_label
from sunrise.errors import SunriseError

LOGGER = logging.getLogger("sunrise-alarm")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Arm a one-shot alarm at tomorrow's sunrise.")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("status", help="Show location, alarm state and tracked notification ids")
    sub.add_parser("sun", help="Show sunrise, sunset, golden and blue hour for tomorrow")
    weather = sub.add_parser("weather", help="Show current weather (cached for the configured TTL)")
    weather.add_argument("--refresh", action="store_true", help="Ignore a fresh cache entry")
    sub.add_parser("enable", help="Arm the alarm for tomorrow's sunrise")
    sub.add_parser("disable", help="Disarm the alarm")
    sub.add_parser("run", help="Run the alarm service until interrupted")
    args = parser.parse_args(argv)
    if not args.command:
        args.command = "status"
    return args


async def _print_status(app: SunriseApp) -> None:
    state = app.state
    print(f"Location: {state.location.label} ({state.location.latitude:.4f}, {state.location.longitude:.4f})")
    print(f"Alarm: {'on' if state.alarm_enabled else 'off'}")
    if state.sun_times:
        print(f"Next sunrise: {format_time_label(state.sun_times.tomorrow.sunrise)}")
    ids = await app.scheduler.scheduled_ids()
    print(f"Tracked notifications: {', '.join(ids) if ids else 'none'}")
    if state.last_error:
        print(f"Last error: {state.last_error}")


def _print_sun(app: SunriseApp) -> None:
    details = app.sun_details()
    if details is None:
        print("Sunrise Unavailable")
        return
    print(f"Sunrise: {details.sunrise}")
    print(f"Sunset: {details.sunset}")
    print(f"Golden hour: {details.golden_hour}")
    print(f"Blue hour: {details.blue_hour}")
    altitude = app.current_altitude()
    if altitude is not None:
        print(f"Sun altitude now: {altitude:+.2f}")


async def _print_weather(app: SunriseApp, refresh: bool) -> None:
    result = await app.weather(force=refresh)
    bundle = result.bundle
    if bundle is None:
        print("Weather Unavailable")
        return
    current = bundle.current
    print(f"Now: {current.temperature:.0f}{current.unit or ''}{'' if result.is_fresh else ' (stale)'}")
    if bundle.details.precip_probability is not None:
        print(f"Precipitation: {bundle.details.precip_probability:.0f}%")
    if bundle.details.wind_speed is not None:
        print(f"Wind: {bundle.details.wind_speed:.0f} {bundle.details.wind_unit or ''}".rstrip())
    if result.air_quality is not None:
        print(f"Air quality (US AQI): {result.air_quality}")
    for day in bundle.forecast:
        print(f"{day.date}: {day.temp_min:.0f} / {day.temp_max:.0f}")


async def _run_forever(app: SunriseApp) -> None:
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _handle_signal(signum: int) -> None:
        LOGGER.info("Received signal %s, shutting down", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    await stop_event.wait()


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    config = SunriseConfig.from_env()
    app = SunriseApp(config)
    try:
        await app.start()
        if args.command == "status":
            await _print_status(app)
        elif args.command == "sun":
            _print_sun(app)
        elif args.command == "weather":
            await _print_weather(app, args.refresh)
        elif args.command in {"enable", "disable"}:
            wanted = args.command == "enable"
            if not app.state.has_onboarded:
                await app.complete_onboarding()
            if app.state.alarm_enabled != wanted:
                await app.toggle_alarm()
            await _print_status(app)
        elif args.command == "run":
            await _run_forever(app)
    except SunriseError as exc:
        LOGGER.error("%s", exc)
        return 1
    finally:
        await app.shutdown()
    return 0


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        sys.exit(asyncio.run(main()))
