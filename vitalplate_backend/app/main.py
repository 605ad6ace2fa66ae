# main.py  (backend entrypoint)
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vitalplate_backend.app.config import validate_manifest
from vitalplate_backend.app.routers import feedback, recommend, vitals

log = logging.getLogger("uvicorn.error")

app = FastAPI(title="VitalPlate API")

# --- CORS for Vite dev -------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Routers -----------------------------------------------------------------
app.include_router(recommend.router)   # /recommendations
app.include_router(feedback.router)    # /feedback, /impressions, /preferences
app.include_router(vitals.router)      # /vitals

# --- Health ------------------------------------------------------------------
@app.get("/health")
async def health():
    manifest = validate_manifest()
    return {"ok": manifest["status"] == "ok", "rules": manifest}

@app.on_event("startup")
async def _check_rules():
    manifest = validate_manifest()
    if manifest["missing_required"]:
        log.warning(f"rulebook files missing: {manifest['missing_required']}")
