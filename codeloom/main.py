from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from .routes.programs import router as programs_router

load_dotenv()

app = FastAPI(title="Codeloom Program API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(programs_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
