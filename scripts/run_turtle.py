#!/usr/bin/env python3
"""
Run a Turtle Script program from the command line and print the run as JSON.

Usage:
  python scripts/run_turtle.py --code "forward 10"
  printf "pen down\nforward 10\n" | python scripts/run_turtle.py
  python scripts/run_turtle.py --engine step --start-x 40 --start-y 40 < square.turtle

The printed document is the `Interpreter.run` dict (`result` and `errors`).
Exit status is 1 when the program failed to parse or run.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional


REPO = Path(__file__).resolve().parents[1]
if str(REPO) not in sys.path:
    sys.path.insert(0, str(REPO))

from backend.turtlescript.interpreter import Interpreter  # noqa: E402

logger = logging.getLogger("run_turtle")


@dataclass
class StartOptions:
    start_x: float = 0.0
    start_y: float = 0.0
    heading: float = 0.0
    initial_pen_down: bool = False
    width: Optional[int] = None
    height: Optional[int] = None
    record: bool = True
    delay: float = 0.0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Run a Turtle Script program")
    p.add_argument("--code", type=str, default=None, help="Program text. Read from stdin when omitted.")
    p.add_argument("--engine", choices=Interpreter.ENGINES, default="sync", help="Execution engine")
    p.add_argument("--start-x", type=float, default=0.0, help="Start column")
    p.add_argument("--start-y", type=float, default=0.0, help="Start row")
    p.add_argument("--heading", type=float, default=0.0, help="Start heading in degrees (0 = +X, clockwise)")
    p.add_argument("--pen-down", action="store_true", help="Start with the pen down")
    p.add_argument("--width", type=int, default=None, help="Grid width; cells outside are not plotted")
    p.add_argument("--height", type=int, default=None, help="Grid height")
    p.add_argument("--delay", type=float, default=0.0, help="Seconds to wait after each move (async engine)")
    p.add_argument("--max-steps", type=int, default=None, help="Instruction budget")
    p.add_argument("--no-record", action="store_true", help="Do not return the operation log")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging on stderr")
    return p.parse_args(argv)


def build_settings(ns: argparse.Namespace) -> Dict[str, Any]:
    opts = StartOptions(
        start_x=ns.start_x,
        start_y=ns.start_y,
        heading=ns.heading,
        initial_pen_down=ns.pen_down,
        width=ns.width,
        height=ns.height,
        record=not ns.no_record,
        delay=ns.delay,
    )
    settings = {k: v for k, v in asdict(opts).items() if v is not None}
    if ns.max_steps is not None:
        settings["max_steps"] = ns.max_steps
    return settings


def run(code: str, engine: str, settings: Dict[str, Any]) -> Dict[str, Any]:
    it = Interpreter()
    if engine == "async":
        return asyncio.run(it.run_async(code, settings=settings))
    return it.run(code, settings=settings, engine=engine)


def main(argv: Optional[List[str]] = None) -> int:
    ns = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if ns.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    code = ns.code if ns.code is not None else sys.stdin.read()
    res = run(code, ns.engine, build_settings(ns))
    if res["errors"] is not None:
        logger.warning("%s: %s", res["errors"]["code"], res["errors"]["message"])
    print(json.dumps(res, indent=2))
    return 1 if res["errors"] is not None else 0


if __name__ == "__main__":
    sys.exit(main())
