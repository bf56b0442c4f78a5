import uvicorn
from prometheus_fastapi_instrumentator import Instrumentator

from addressdesk.core.config import settings
from addressdesk.core.logging import configure_logging
from . import app as address_app

configure_logging()
app = address_app
# Middleware cannot be added once the app has started, so instrument at import.
instrumentator = Instrumentator().instrument(app)
instrumentator.expose(app)


@app.get("/health")
async def health() -> dict[str, bool]:
    return {"ok": True}


def run() -> None:
    uvicorn.run("addressdesk.main:app", host=settings.HOST, port=settings.PORT)
