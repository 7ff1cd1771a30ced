"""
Loan Ledger API Application Factory
"""

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from .lenders import router as lenders_router
from .loans import router as loans_router
from .schedule import router as schedule_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Loan Ledger API",
        description="Repayment schedules and payment recording for peer-to-peer loans",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(schedule_router, prefix="/schedule", tags=["Schedule"])
    app.include_router(loans_router, prefix="/lenders/{lender_id}/loans", tags=["Loans"])
    app.include_router(lenders_router, prefix="/lenders/{lender_id}", tags=["Lenders"])

    @app.get("/")
    async def root():
        """Service overview"""
        return {
            "system": "Loan Ledger",
            "version": __version__,
            "endpoints": {
                "schedule_preview": "/schedule/preview",
                "loans": "/lenders/{lender_id}/loans",
                "profile": "/lenders/{lender_id}/profile",
                "summary": "/lenders/{lender_id}/summary",
                "docs": "/docs"
            }
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "loan_ledger_api",
            "version": __version__
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "loan_ledger.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
