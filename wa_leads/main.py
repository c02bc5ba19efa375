"""FastAPI application wiring for WA Leads.

The app exposes:

- the WhatsApp Cloud webhook (subscription handshake and inbound messages)
  which drives customers through their tenant's conversation tree;
- admin routes to read/replace a tenant's tree and browse captured leads;
- health, version and Prometheus metrics endpoints.
"""

from dotenv import load_dotenv
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .routers import tenants, whatsapp

load_dotenv()

app = FastAPI(title="WA Leads", version=__version__)
init_logging(app)
app.include_router(whatsapp.router)
app.include_router(tenants.router)

# request counters and latency histograms per route
Instrumentator().instrument(app).expose(
    app, include_in_schema=False, endpoint="/api/metrics"
)


@app.get("/api/health")
async def health():
    """Process liveness; does not touch the database."""
    return {"status": "ok"}


@app.get("/api/version")
async def version():
    """Package version plus build metadata stamped at release time."""
    return {
        "version": __version__,
        "build_date": __build_date__,
        "commit_sha": __commit_sha__,
    }
