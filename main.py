from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import logger, ALLOWED_ORIGINS  # type: ignore

# Routers
from routers import revenue, reports  # type: ignore

app = FastAPI(title="Storefront Revenue")

# ---- CORS setup ----
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(revenue.router)
app.include_router(reports.router)


@app.on_event("startup")
async def _init_schema():
    try:
        from core.database import init_db
        init_db()
    except Exception as _ex:
        logger.warning(f"init_db failed: {_ex}")


@app.get("/health")
async def health():
    return {"ok": True}
