# main.py
# ──────────────────────────────────────────────────────────────────────────────
# Outreach onboarding API entry point.
#   • Run with: uvicorn main:app --host :: --port 8080
#   • Settings come from the environment / .env (see backend/config.py)
# ──────────────────────────────────────────────────────────────────────────────

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL_NAME = (os.getenv("LOG_LEVEL") or "INFO").upper()
LOG_LEVEL = getattr(logging, LOG_LEVEL_NAME, logging.INFO)
logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger("outreach.main")

from backend.app import create_app  # noqa: E402

app = create_app()


@app.on_event("startup")
async def _startup_log():
    settings = app.state.settings
    logger.info(
        "Startup: env=%s generation=%s collaborators=%s pacing=%.2fs",
        settings.environment,
        settings.generation_enabled,
        settings.collaborators_enabled,
        settings.pacing_delay,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="::",
        port=int(os.getenv("PORT", "8080")),
        reload=False,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
