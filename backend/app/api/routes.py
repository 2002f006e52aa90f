from fastapi import APIRouter, Depends

from app.schemas.market import MarketDataResponse, MarketHealthResponse
from app.services.market_snapshot import MarketSnapshotProvider, get_provider

router = APIRouter()


def get_market_provider() -> MarketSnapshotProvider:
    return get_provider()


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


# Plain ``def`` handlers: FastAPI runs them in its threadpool, which keeps the
# blocking upstream calls off the event loop.
@router.get(
    "/api/dashboard/market-data",
    response_model=MarketDataResponse,
    response_model_exclude_none=True,
)
def market_data_endpoint(
    provider: MarketSnapshotProvider = Depends(get_market_provider),
) -> MarketDataResponse:
    return MarketDataResponse(data=provider.get_snapshot())


@router.post(
    "/api/dashboard/market-data/refresh",
    response_model=MarketDataResponse,
    response_model_exclude_none=True,
)
def refresh_market_data_endpoint(
    provider: MarketSnapshotProvider = Depends(get_market_provider),
) -> MarketDataResponse:
    return MarketDataResponse(data=provider.refresh())


@router.get("/api/health/market", response_model=MarketHealthResponse)
def market_health_endpoint(
    provider: MarketSnapshotProvider = Depends(get_market_provider),
) -> MarketHealthResponse:
    entry = provider.peek()
    age = None
    if entry is not None:
        age = (provider.now() - entry.fetched_at).total_seconds()
    return MarketHealthResponse(
        finnhub_configured=provider.is_configured,
        cached=age is not None,
        cache_age_seconds=round(age, 3) if age is not None else None,
        cache_backend=provider.cache.name,
    )
