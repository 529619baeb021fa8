import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Load environment variables from .env file before anything reads them
load_dotenv()

from .database import Base, engine  # noqa: E402
from .routes import diligence_router  # noqa: E402

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):

    # Startup
    Base.metadata.create_all(bind=engine)
    logger.info("Starting VC Diligence Scoring API")
    logger.info("   OpenAI Key:  %s", "Configured" if os.getenv("OPENAI_API_KEY") else "Not set (scoring disabled)")
    logger.info("   Model:       %s", os.getenv("OPENAI_MODEL", "gpt-4o"))

    yield

    logger.info("Shutting down VC Diligence Scoring API")


app = FastAPI(
    title="VC Diligence Scoring API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",      # Next.js dev server
        "http://127.0.0.1:3000",
        "http://localhost:3001",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(diligence_router)


@app.get(
    "/",
    summary="API Root",
    description="Welcome endpoint with API information",
    tags=["General"]
)
async def root():
    """Root endpoint with API information."""
    return {
        "name": "VC Diligence Scoring",
        "version": "0.1.0",
        "description": "Evidence-calibrated due-diligence scoring for venture investments",
        "docs": "/docs",
        "endpoints": {
            "create": "POST /diligence/ - Create a diligence record",
            "score": "POST /diligence/{id}/score - Score or rescore a company",
            "tam": "POST /diligence/{id}/tam-analysis - Founder vs independent TAM",
            "learning": "GET /diligence/learning-data - Historical decision patterns",
        }
    }


@app.get(
    "/health",
    summary="Global Health Check",
    description="Check if the API server is running",
    tags=["General"]
)
async def health():
    """Global health check endpoint."""
    return {
        "status": "healthy",
        "service": "vc-diligence-scoring",
        "version": "0.1.0"
    }


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "detail": str(exc) if os.getenv("DEBUG", "false").lower() == "true" else "An unexpected error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "diligence.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("DEBUG", "true").lower() == "true",
    )
