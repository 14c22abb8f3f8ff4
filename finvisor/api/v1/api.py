from fastapi import APIRouter
from finvisor.api.v1.endpoints import billing, dashboard, exports, feed, filters, receipts

api_router = APIRouter()

api_router.include_router(feed.router, prefix="/receipts", tags=["feed"])
api_router.include_router(receipts.router, prefix="/receipts", tags=["receipts"])
api_router.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
api_router.include_router(filters.router, prefix="/filters", tags=["filters"])
api_router.include_router(exports.router, tags=["exports"])
api_router.include_router(billing.router, prefix="/billing", tags=["billing"])
