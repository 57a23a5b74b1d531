import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from maildetective.config import settings
from maildetective.core.rules import load_detection_lists
from maildetective.api import routes

logging.basicConfig(
    level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    lists = load_detection_lists(settings.DETECTION_LISTS_PATH)
    app.state.detection_lists = lists

    configured = [name for name, key in settings.credentials().items() if key]
    if configured:
        logger.info(f"✓ Reputation sources configured: {', '.join(configured)}")
    else:
        logger.warning("⚠️ No reputation source keys set; URL checks are heuristic-only")

    logger.info(f"🚀 {settings.APP_NAME} ready (detection lists v{lists.version})")
    yield
    logger.info(f"👋 {settings.APP_NAME} stopped")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan
)

# Browser front-ends call the analysis endpoints directly
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(routes.router, prefix=settings.API_PREFIX, tags=["Analysis"])


@app.get("/")
def root(request: Request):
    lists = getattr(request.app.state, "detection_lists", None)
    return {
        "message": f"{settings.APP_NAME} API",
        "version": settings.VERSION,
        "analyzers": {
            "email": f"{settings.API_PREFIX}/analyze/email",
            "url": f"{settings.API_PREFIX}/analyze/url",
        },
        "detectionLists": lists.version if lists else None,
        "docs": "/docs"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("maildetective.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
