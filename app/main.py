"""
HTTP API for Finance Manager

This is the JSON API that the web and mobile clients talk to.

DESIGN PRINCIPLES:
1. Route handlers stay thin: resolve the caller, call the lifecycle
   controller or the advisor, shape the response
2. Credentials never leave this layer; the core only sees a user id
3. Every error maps to one status code and an {"error": ...} body
4. Storage failures are logged and audited, and the client only gets
   an opaque 500

Run with:
    uvicorn app.main:app --port 4000
"""

from contextlib import asynccontextmanager
from typing import Optional
from uuid import UUID

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from finance_manager.advisor import SummaryNotFoundError
from finance_manager.audit import create_correlation_id, get_logger
from finance_manager.config import get_settings, validate_all_settings
from finance_manager.models.transaction import (
    AccountSummary,
    BudgetSuggestion,
    Transaction,
    TransactionInput,
)
from finance_manager.orchestrator import (
    AppComponents,
    TransactionNotFoundError,
    create_app_components,
)
from finance_manager.services.auth import (
    AuthError,
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    InvalidTokenError,
)
from finance_manager.services.storage import NotFoundError, StorageError
from finance_manager.validation import TransactionValidationError


logger = get_logger(__name__)


class Credentials(BaseModel):
    """Sign-up / login body."""
    email: Optional[str] = None
    password: Optional[str] = None


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


# ---------- Dependencies ----------
def get_components(request: Request) -> AppComponents:
    return request.app.state.components


def current_user_id(
    authorization: Optional[str] = Header(default=None),
    components: AppComponents = Depends(get_components),
) -> UUID:
    return components.auth.resolve_user_id(authorization)


def _parse_transaction_id(raw: str) -> UUID:
    try:
        return UUID(raw)
    except ValueError:
        # A malformed id can't match any transaction
        raise TransactionNotFoundError(raw)


# ---------- Error handlers ----------
def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(TransactionValidationError)
    async def validation_error_handler(request: Request, exc: TransactionValidationError):
        return _error(400, str(exc), issues=exc.issues_as_dicts())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return _error(400, "Invalid request body.")

    @app.exception_handler(TransactionNotFoundError)
    async def transaction_not_found_handler(request: Request, exc: TransactionNotFoundError):
        return _error(404, "Transaction not found")

    @app.exception_handler(SummaryNotFoundError)
    async def summary_not_found_handler(request: Request, exc: SummaryNotFoundError):
        return _error(404, "No account summary found.")

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error(404, "Not found")

    @app.exception_handler(InvalidTokenError)
    async def invalid_token_handler(request: Request, exc: InvalidTokenError):
        return _error(400, "Invalid token.")

    @app.exception_handler(InvalidCredentialsError)
    async def invalid_credentials_handler(request: Request, exc: InvalidCredentialsError):
        return _error(400, str(exc))

    @app.exception_handler(EmailAlreadyRegisteredError)
    async def email_registered_handler(request: Request, exc: EmailAlreadyRegisteredError):
        return _error(400, "Email already registered!")

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        return _error(401, "Access denied. No token provided.")

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error(
            "storage_error",
            path=request.url.path,
            method=request.method,
            error=str(exc),
        )
        components = getattr(request.app.state, "components", None)
        if components:
            await components.audit_logger.log_error(
                error_type=type(exc).__name__,
                error_message=str(exc),
                details={"path": request.url.path, "method": request.method},
            )
        return _error(500, "Internal server error")


# ---------- Routes ----------
def register_routes(app: FastAPI) -> None:

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.post("/api/signup", status_code=201)
    async def signup(
        body: Credentials,
        components: AppComponents = Depends(get_components),
    ):
        await components.auth.signup(body.email or "", body.password or "")
        return {"message": "User registered successfully!"}

    @app.post("/api/login")
    async def login(
        body: Credentials,
        components: AppComponents = Depends(get_components),
    ):
        token = await components.auth.login(body.email or "", body.password or "")
        return {"message": "Login successful!", "token": token}

    @app.get("/api/transactions", response_model=list[Transaction])
    async def list_transactions(
        user_id: UUID = Depends(current_user_id),
        components: AppComponents = Depends(get_components),
    ):
        return await components.lifecycle.list_transactions(user_id)

    @app.get("/api/account-summary", response_model=AccountSummary)
    async def account_summary(
        user_id: UUID = Depends(current_user_id),
        components: AppComponents = Depends(get_components),
    ):
        return await components.lifecycle.get_summary(user_id, create_correlation_id())

    @app.get(
        "/api/budget-suggestion",
        response_model=BudgetSuggestion,
        response_model_exclude_none=True,
    )
    async def budget_suggestion(
        user_id: UUID = Depends(current_user_id),
        components: AppComponents = Depends(get_components),
    ):
        return await components.advisor.suggest(user_id, create_correlation_id())

    @app.post("/api/transactions", status_code=201)
    async def create_transaction(
        body: TransactionInput,
        user_id: UUID = Depends(current_user_id),
        components: AppComponents = Depends(get_components),
    ):
        transaction = await components.lifecycle.create(user_id, body, create_correlation_id())
        return {"message": "Transaction added successfully!", "transaction": transaction}

    @app.put("/api/transactions/{transaction_id}")
    async def update_transaction(
        transaction_id: str,
        body: TransactionInput,
        user_id: UUID = Depends(current_user_id),
        components: AppComponents = Depends(get_components),
    ):
        transaction, summary = await components.lifecycle.update(
            user_id,
            _parse_transaction_id(transaction_id),
            body,
            create_correlation_id(),
        )
        return {
            "message": "Transaction updated successfully!",
            "transaction": transaction,
            "summary": summary,
        }

    @app.delete("/api/transactions/{transaction_id}")
    async def delete_transaction(
        transaction_id: str,
        user_id: UUID = Depends(current_user_id),
        components: AppComponents = Depends(get_components),
    ):
        await components.lifecycle.delete(
            user_id,
            _parse_transaction_id(transaction_id),
            create_correlation_id(),
        )
        return {"message": "Transaction deleted successfully"}


def create_app(components: Optional[AppComponents] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        components: Pre-built components (tests pass in-memory ones).
                    If None, settings are validated and components are
                    created from them at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "components", None) is None:
            results = validate_all_settings()
            failed = [name for name, ok in results.items() if ok is False]
            if failed:
                details = {k: v for k, v in results.items() if k.endswith("_error")}
                logger.error("invalid_settings", failed=failed, **details)
                raise RuntimeError(f"Invalid configuration: {', '.join(failed)}")
            app.state.components = create_app_components()
            logger.info(
                "app_started",
                storage_backend=get_settings().app.storage_backend,
            )
        yield

    app = FastAPI(title="Finance Manager", lifespan=lifespan)
    app.state.components = components

    if components is None:
        origins = get_settings().app.cors_origins_list
    else:
        origins = ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    register_routes(app)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    app_settings = get_settings().app
    uvicorn.run(app, host=app_settings.host, port=app_settings.port)
