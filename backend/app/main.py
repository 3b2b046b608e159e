"""FastAPI application entrypoints for Turtle Script.

This module exposes HTTP endpoints used by the drawing frontend and tests. It
keeps handlers small: each `/run` request constructs a fresh `Interpreter`
(and, when asked, a fresh `PixelGrid`) so requests never share run state.
Server-side caps are enforced so clients cannot raise the step budget, the
operation log cap or the per-move animation delay above safe values.
"""

import logging
import time
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI
from pydantic import BaseModel

from ..turtlescript.interpreter import Interpreter
from ..turtlescript.renderer import PixelGrid

logger = logging.getLogger(__name__)

app = FastAPI(title="Turtle Script API", version="0.1")

# async runs animate; keep a single request from holding a worker for long
MAX_DELAY_S = 0.05


def _cap_settings(settings: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Enforce server-side safe caps for runtime tunables.

    Clients may send a `settings` object with start options and limits. The
    limits are clamped to the defaults of a fresh `Interpreter()`; start
    options (position, heading, color, pen, bounds, record) pass through and
    are validated by the interpreter itself.

    Returns a dict suitable for passing directly into `Interpreter.run`.
    """
    defaults = Interpreter()
    safe = {
        "max_steps": defaults.max_steps,
        "max_operations": defaults.max_operations,
        "delay": 0.0,
    }
    if not settings:
        return safe
    caps = {k: v for k, v in settings.items() if k not in safe}
    caps["max_steps"] = max(1, min(int(settings.get("max_steps", safe["max_steps"])), safe["max_steps"]))
    caps["max_operations"] = max(
        0, min(int(settings.get("max_operations", safe["max_operations"])), safe["max_operations"])
    )
    caps["delay"] = max(0.0, min(float(settings.get("delay", 0.0)), MAX_DELAY_S))
    return caps


class RunRequest(BaseModel):
    """Pydantic model for the `/run` request body.

    Fields:
        code: Turtle Script source text.
        settings: optional start options and limits; capped server-side.
        engine: "sync" (default), "async" or "step". All three give the same
            result; "async" honours `settings.delay` between moves.
        render: also return the painted cells from a `PixelGrid`.
    """
    code: str
    settings: Optional[Dict[str, Any]] = None
    engine: str = "sync"
    render: bool = False


@app.post("/run")
async def run_code(req: RunRequest):
    """Handle a program execution request.

    Builds a fresh `Interpreter` per request, applies the capped settings and
    runs the requested engine. Any unexpected exception becomes a
    SERVER_ERROR response so callers always receive the same JSON shape.
    """
    start = time.time()
    grid = PixelGrid() if req.render else None
    try:
        capped = _cap_settings(req.settings or {})
        it = Interpreter()
        it.max_steps = capped["max_steps"]
        it.max_operations = capped["max_operations"]
        if req.engine == "async":
            result = await it.run_async(req.code, settings=capped, renderer=grid)
        else:
            result = it.run(req.code, settings=capped, engine=req.engine, renderer=grid)
    except Exception as e:
        logger.exception("run request failed")
        return {
            "result": None,
            "duration_ms": int((time.time() - start) * 1000),
            "errors": {"code": "SERVER_ERROR", "message": str(e)},
        }
    result["duration_ms"] = int((time.time() - start) * 1000)
    if grid is not None:
        result["canvas"] = grid.to_dict()
    return result


class ParseRequest(BaseModel):
    code: str


@app.post("/parse")
async def parse_code(req: ParseRequest):
    """Parse without running; returns the instruction tree or a syntax error."""
    parsed = Interpreter().parse(req.code)
    if parsed["errors"] is not None:
        return {"errors": parsed["errors"]}
    return {"instructions": parsed["instructions"]}


def serve(host: str = "127.0.0.1", port: int = 8000) -> None:
    """Run the API under uvicorn (the `turtlescript-api` console script)."""
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    serve()
