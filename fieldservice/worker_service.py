"""HTTP wrapper for the background worker.

Runs ``worker_loop`` as a task next to a health endpoint so the worker can be
deployed as a container service that must answer probes.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from fieldservice import worker


@asynccontextmanager
async def lifespan(app: FastAPI):
    task = asyncio.create_task(worker.worker_loop())
    app.state.worker_task = task
    try:
        yield
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


app = FastAPI(lifespan=lifespan)


@app.get("/health")
def health() -> dict:
    task = getattr(app.state, "worker_task", None)
    running = task is not None and not task.done()
    return {
        "status": "ok" if running else "degraded",
        "last_pass": dict(worker.last_pass),
    }


def main() -> None:
    import uvicorn

    port = int(os.getenv("PORT", "8080"))
    host = os.getenv("HOST", "0.0.0.0")
    uvicorn.run("fieldservice.worker_service:app", host=host, port=port)


if __name__ == "__main__":
    main()
