#!/usr/bin/env python3
"""
Command line control for WiZ bulbs.

    wizroom 192.168.1.50 --on --brightness 40
    wizroom --room bedroom --status
    wizroom --list

The room registry is only read here; rooms are managed through the API.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Sequence

from wizroom import __version__, config
from wizroom.client import BulbClient
from wizroom.control import LightController
from wizroom.errors import RegistryError, ValidationError
from wizroom.scenes import Scene
from wizroom.store import RoomRegistry
from wizroom.wiz_protocol import BulbAddress, Command, GetStatus, Reboot, SetColor, SetPower, pilot_from


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="wizroom", description="WiZ light control CLI")
    parser.add_argument("ip", nargs="*", help="Bulb IPv4 address(es)")
    parser.add_argument("--room", help="Control every bulb in this room")
    parser.add_argument("--storage", default=str(config.STORAGE_PATH), help="Room registry file")
    parser.add_argument("-b", "--brightness", type=int, help="Set the bulb brightness (10-100)")
    parser.add_argument("-c", "--color", help="Set the bulb color as r,g,b (0-255)")
    parser.add_argument("-C", "--cool", type=int, help="Set the cool white value (1-100)")
    parser.add_argument("-W", "--warm", type=int, help="Set the warm white value (1-100)")
    parser.add_argument("-p", "--speed", type=int, help="Set the bulb speed (20-200)")
    parser.add_argument("-t", "--temp", type=int, help="Set the bulb temperature in Kelvin (1000-8000)")
    parser.add_argument("-l", "--list", action="store_true", help="List the available scene IDs")
    parser.add_argument("-s", "--scene", type=int, help="Set the scene by ID")
    power = parser.add_mutually_exclusive_group()
    power.add_argument("-o", "--on", action="store_true", help="Turn the bulb on")
    power.add_argument("-f", "--off", action="store_true", help="Turn the bulb off")
    power.add_argument("-r", "--reboot", action="store_true", help="Reboot the bulb")
    parser.add_argument("-i", "--status", action="store_true", help="Get the current bulb status")
    parser.add_argument("--timeout", type=float, default=config.BULB_TIMEOUT, help="Seconds to wait per attempt")
    parser.add_argument("--retries", type=int, default=config.BULB_RETRIES, help="Retransmissions before giving up")
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def build_commands(args: argparse.Namespace) -> List[Command]:
    if args.status:
        return [GetStatus()]

    commands: List[Command] = []
    # at most one power action
    if args.on:
        commands.append(SetPower(True))
    elif args.off:
        commands.append(SetPower(False))
    elif args.reboot:
        commands.append(Reboot())

    # everything else goes out as one setPilot
    pilot = pilot_from(
        scene=args.scene,
        brightness=args.brightness,
        color=SetColor.parse(args.color) if args.color is not None else None,
        speed=args.speed,
        temp=args.temp,
        cool=args.cool,
        warm=args.warm,
    )
    if pilot is not None:
        commands.append(pilot)

    if not commands:
        raise ValidationError("nothing to do; give a setting, a power action or --status")
    return commands


def print_scenes() -> None:
    for scene in Scene:
        print(f"{scene.value:>6} => {scene.title}")


async def run(targets: Sequence[BulbAddress], commands: Sequence[Command], timeout: float, retries: int) -> int:
    """Send each command to every target; return the number of failed deliveries."""
    failures = 0
    async with BulbClient(timeout=timeout, max_retries=retries) as client:
        controller = LightController(client)
        for command in commands:
            outcomes = await controller.apply(targets, command)
            for address, outcome in outcomes.items():
                if outcome.ok:
                    print(json.dumps({str(address): outcome.value.as_dict()}, indent=2))
                else:
                    print(f"{address}: {outcome.error}", file=sys.stderr)
                    failures += 1
    return failures


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.list:
        print_scenes()
        return 0

    try:
        if args.timeout <= 0 or args.retries < 0:
            raise ValidationError("--timeout must be positive and --retries not negative")
        commands = build_commands(args)
        targets = [BulbAddress.parse(ip) for ip in args.ip]
    except ValidationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    if args.room:
        try:
            room = RoomRegistry.load(args.storage).get(args.room)
        except RegistryError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1
        if not room.bulbs and not targets:
            print(f"error: no lights in room {args.room}", file=sys.stderr)
            return 1
        targets.extend(sorted(room.bulbs))

    if not targets:
        print("error: IP address or --room is required", file=sys.stderr)
        return 2

    failures = asyncio.run(run(targets, commands, args.timeout, args.retries))
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
