"""
SecureBank API Application Factory
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..exceptions import (
    BankingError, ValidationError, InvalidAccount, InsufficientFunds, LoanNotPending,
    NoReceivingAccount, PermissionDenied, ConflictError, StoreUnavailable
)
from ..logging_config import get_logger
from .accounts import router as accounts_router
from .transactions import router as transactions_router
from .loans import router as loans_router
from .users import router as users_router
from .reports import router as reports_router


ERROR_STATUS_CODES = {
    ValidationError: 422,
    InvalidAccount: 404,
    InsufficientFunds: 409,
    LoanNotPending: 409,
    NoReceivingAccount: 409,
    PermissionDenied: 403,
    ConflictError: 409,
    StoreUnavailable: 503,
}

logger = get_logger("securebank.api")


def status_code_for(error: BankingError) -> int:
    """HTTP status for an error kind, resolved through its class hierarchy"""
    for cls in type(error).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 400


async def banking_error_handler(request: Request, exc: BankingError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={
        "error": ValidationError.code,
        "detail": "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        ),
        "retryable": False
    })


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="SecureBank Ledger API",
        description="Accounts, money movement and loans for the SecureBank portal",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(BankingError, banking_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Include routers
    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(transactions_router, prefix="/transactions", tags=["Transactions"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(users_router, prefix="/users", tags=["Users"])
    app.include_router(reports_router, prefix="/reports", tags=["Reports"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "securebank_api",
            "version": __version__
        }

    return app


app = create_app()
