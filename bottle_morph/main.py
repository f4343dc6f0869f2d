import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

# Load environment variables from .env before any settings are read.
print("\n" + "=" * 60)
print("LOADING ENVIRONMENT CONFIGURATION")
print("=" * 60)

env_path = Path(__file__).parent.parent / ".env"
print(f"Looking for .env file at: {env_path}")

if env_path.exists():
    load_dotenv(dotenv_path=env_path, override=True)
    print("✓ .env file loaded")
    if os.environ.get("GEMINI_API_KEY"):
        print("✓ GEMINI_API_KEY loaded")
    else:
        print("⚠ GEMINI_API_KEY not found in .env file; generation will return 502")
else:
    print("⚠ .env file not found, using process environment only")

print("=" * 60 + "\n")

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

from bottle_morph.api.v1.routes import router as api_v1_router  # noqa: E402


def create_app() -> FastAPI:
    """
    Application factory for the Bottle Morph API.

    Keeping this as a separate function makes it easy to build fresh apps
    in tests with dependency overrides.
    """
    app = FastAPI(
        title="Bottle Morph API",
        version="0.1.0",
        description="Replaces a detected bottle and composites it back into the photo.",
    )

    # Infrastructure-level health check (non-versioned) primarily for ops.
    @app.get("/health", tags=["health"])
    async def root_health_check() -> dict:
        """Simple root health check endpoint."""
        return {"status": "ok"}

    app.include_router(api_v1_router)

    return app


app = create_app()
