"""HTTP endpoints used by the wallet front end."""
from typing import Dict, Any
from fastapi import APIRouter, FastAPI, Request, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from loguru import logger

from exchange.errors import (
    BroadcastError,
    ConfigurationError,
    ProviderError,
    ReconciliationAmbiguity,
    TransportError,
    user_message,
)
from models.schemas import (
    BalancesRequest,
    BroadcastRequest,
    CloseAccountRequest,
    ExecuteRequest,
    OrderRequest,
)


router = APIRouter(prefix="/api")


def _get_solana(request: Request):
    solana = getattr(request.app.state, "solana", None)
    if not solana:
        raise HTTPException(status_code=500, detail="Solana client not initialized")
    return solana


def _get_jupiter(request: Request):
    jupiter = getattr(request.app.state, "jupiter", None)
    if not jupiter:
        raise HTTPException(status_code=500, detail="Jupiter client not initialized")
    return jupiter


def _http_error(route: str, exc: Exception) -> HTTPException:
    """Map a domain error to an HTTP error response."""
    if isinstance(exc, HTTPException):
        return exc
    if isinstance(exc, ValueError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, ConfigurationError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(exc, (ProviderError, BroadcastError, TransportError, ReconciliationAmbiguity)):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    logger.error("API {} error: {}", route, exc)
    return HTTPException(status_code=code, detail=user_message(exc))


@router.post("/balances")
async def balances(body: BalancesRequest, request: Request) -> Dict[str, Any]:
    """Native SOL plus every token account (zero balances included)."""
    solana = _get_solana(request)
    try:
        result = await solana.read_balances(body.user)
    except Exception as e:
        raise _http_error("/api/balances", e) from e
    return {
        mint: entry.model_dump(by_alias=True, exclude_none=True)
        for mint, entry in result.items()
    }


@router.post("/order")
async def order(body: OrderRequest, request: Request) -> Dict[str, Any]:
    jupiter = _get_jupiter(request)
    try:
        result = await jupiter.create_order(body.user, body.input_mint, body.output_mint, body.amount)
    except Exception as e:
        raise _http_error("/api/order", e) from e
    return result.model_dump(by_alias=True)


@router.post("/execute")
async def execute(body: ExecuteRequest, request: Request) -> Dict[str, Any]:
    jupiter = _get_jupiter(request)
    try:
        signature = await jupiter.execute_order(body.signed_transaction, body.request_id)
    except Exception as e:
        raise _http_error("/api/execute", e) from e
    return {"signature": signature}


@router.post("/broadcast")
async def broadcast(body: BroadcastRequest, request: Request) -> Dict[str, Any]:
    solana = _get_solana(request)
    try:
        signature = await solana.broadcast_signed_transaction(body.signed_transaction)
    except Exception as e:
        raise _http_error("/api/broadcast", e) from e
    return {"signature": signature}


@router.post("/closeAccount")
async def close_account(body: CloseAccountRequest, request: Request) -> Dict[str, Any]:
    solana = _get_solana(request)
    try:
        transaction = await solana.build_close_account_transaction(body.user, body.token_account)
    except Exception as e:
        raise _http_error("/api/closeAccount", e) from e
    return {"transaction": transaction}


def register_error_handlers(app: FastAPI) -> None:
    """Render every error response as {"error": "..."}."""

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        detail = errors[0].get("msg", "Invalid request body") if errors else "Invalid request body"
        return JSONResponse(status_code=422, content={"error": detail})
