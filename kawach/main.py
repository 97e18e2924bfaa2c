"""
MAIN API - FastAPI application for the Kawach fraud shield

COMPONENTS (one set per app, held on app.state):
- FraudStore            reputation registry, patterns, trust lists, logs
- FraudDetectionEngine  deterministic scoring over the store
- EvidenceLedger        append-only hash chain
- EvidenceVault         file intake sealed into the ledger

Run with: uvicorn kawach.main:app
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import Optional
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .fraud_routes import router as fraud_router
from .ledger import EvidenceLedger
from .risk_engine import FraudDetectionEngine
from .seed_data import seed_fraud_database
from .store import FraudStore, InMemoryFraudStore
from .vault import EvidenceVault
from .vault_routes import router as vault_router

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def seed_enabled() -> bool:
    return os.getenv("SEED_FRAUD_DATABASE", "false").lower() in ("1", "true", "yes")


def create_app(
    store: Optional[FraudStore] = None,
    ledger: Optional[EvidenceLedger] = None,
    vault: Optional[EvidenceVault] = None,
    seed: Optional[bool] = None,
    upload_dir: Optional[str] = None,
) -> FastAPI:
    """Build an app around the given collaborators (fresh in-memory ones by default)"""
    store = store or InMemoryFraudStore()
    engine = FraudDetectionEngine(store)
    if vault is None:
        vault = EvidenceVault(ledger or EvidenceLedger(), upload_dir=upload_dir)
    seed = seed_enabled() if seed is None else seed

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if seed:
            await seed_fraud_database(store)
        await engine.initialize()
        logger.info(f"🛡️ Kawach ready (ledger difficulty {vault.ledger.difficulty})")
        yield

    app = FastAPI(title="Kawach Fraud Shield API", version=VERSION, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.store = store
    app.state.engine = engine
    app.state.vault = vault
    app.state.ledger = vault.ledger

    app.include_router(fraud_router)
    app.include_router(vault_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "version": VERSION}

    return app


app = create_app()
