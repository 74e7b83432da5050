"""
FastAPI REST API - status and control endpoints
Exposes bot metrics, monitored pairs, recent analyses and validator state
"""

from fastapi import FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from pydantic import BaseModel
import logging

from dexarb.api.middleware import (
    RateLimiter,
    make_rate_limit_middleware,
    logging_middleware,
    security_headers_middleware,
    error_handling_middleware
)
from dexarb.utils.helpers import get_pair_key
from dexarb.utils.validators import AddressValidator

logger = logging.getLogger(__name__)


class PairRequest(BaseModel):
    token_a: str
    token_b: str


class PairResponse(BaseModel):
    key: str
    token_a: str
    token_b: str


class ReferencePriceRequest(BaseModel):
    price_usd: float


def _validate_pair(token_a: str, token_b: str) -> None:
    for token in (token_a, token_b):
        if not AddressValidator.validate_ethereum_address(token):
            raise HTTPException(status_code=400, detail=f"Invalid token address: {token}")
    if token_a.lower() == token_b.lower():
        raise HTTPException(status_code=400, detail="Pair tokens must differ")


def create_app(services, lifespan=None) -> FastAPI:
    """
    Build the API around a running ServiceManager

    Args:
        services: object exposing settings, aggregator, validator,
            profit_calculator, handler and redis_manager
        lifespan: optional lifespan context bound to the app
    """
    settings = services.settings
    prefix = settings.API_PREFIX

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan
    )
    app.state.services = services

    # Add middleware to app (after CORS middleware)
    app.middleware("http")(error_handling_middleware)
    app.middleware("http")(logging_middleware)
    app.middleware("http")(make_rate_limit_middleware(RateLimiter(settings.RATE_LIMIT_PER_MINUTE)))
    app.middleware("http")(security_headers_middleware)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"]
    )

    # ===== Health Check =====

    @app.get("/api/health")
    async def health_check(request: Request):
        """Health check endpoint"""
        svc = request.app.state.services
        aggregator_stats = svc.aggregator.get_stats()
        return {
            "status": "healthy" if aggregator_stats["ready_adapters"] >= 2 else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": settings.APP_VERSION,
            "dry_run": settings.DRY_RUN,
            "services": {
                "adapters": aggregator_stats["ready_adapters"],
                "monitoring": aggregator_stats["is_monitoring"],
                "redis": svc.redis_manager.is_connected if svc.redis_manager else False
            }
        }

    # ===== Bot Endpoints =====

    @app.get(f"{prefix}/stats")
    async def get_stats(request: Request) -> Dict[str, Any]:
        """Pipeline metrics and aggregator state"""
        svc = request.app.state.services
        return {
            "metrics": svc.handler.metrics.summary(),
            "aggregator": svc.aggregator.get_stats(),
            "in_flight": svc.handler.in_flight
        }

    @app.get(f"{prefix}/pairs", response_model=List[PairResponse])
    async def get_pairs(request: Request):
        """Monitored pairs in canonical order"""
        svc = request.app.state.services
        return [
            PairResponse(key=get_pair_key(a, b), token_a=a, token_b=b)
            for a, b in svc.aggregator.get_monitored_pairs()
        ]

    @app.post(f"{prefix}/pairs", response_model=PairResponse, status_code=status.HTTP_201_CREATED)
    async def add_pair(pair: PairRequest, request: Request):
        """Start monitoring a pair"""
        _validate_pair(pair.token_a, pair.token_b)
        key = request.app.state.services.aggregator.add_pair(pair.token_a, pair.token_b)
        token_a, token_b = key.split("-")
        return PairResponse(key=key, token_a=token_a, token_b=token_b)

    @app.delete(f"{prefix}/pairs")
    async def remove_pair(
        request: Request,
        token_a: str = Query(..., description="First token address"),
        token_b: str = Query(..., description="Second token address")
    ):
        """Stop monitoring a pair"""
        if not request.app.state.services.aggregator.remove_pair(token_a, token_b):
            raise HTTPException(status_code=404, detail="Pair is not monitored")
        return {"removed": get_pair_key(token_a, token_b)}

    @app.get(f"{prefix}/opportunities/recent")
    async def get_recent_opportunities(
        request: Request,
        limit: int = Query(20, ge=1, le=100, description="Maximum number of results"),
        executable_only: Optional[bool] = Query(False, description="Only executable analyses")
    ):
        """Most recent profit analyses, newest first"""
        analyses = request.app.state.services.handler.get_recent_analyses(limit=100)
        if executable_only:
            analyses = [a for a in analyses if a["is_executable"]]
        return analyses[:limit]

    @app.get(f"{prefix}/validator")
    async def get_validator(request: Request):
        """Validator configuration and list sizes"""
        return request.app.state.services.validator.get_stats()

    @app.put(f"{prefix}/reference-price")
    async def set_reference_price(body: ReferencePriceRequest, request: Request):
        """Reprice the reference token for validation and profit scoring"""
        calculator = request.app.state.services.profit_calculator
        try:
            calculator.update_reference_price(body.price_usd)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"reference_price_usd": float(calculator.reference_price.usd)}

    return app
