from fastapi import APIRouter, Depends

from finvisor.api.deps import get_filter_store
from finvisor.schemas.filters import FilterPreferences, FilterPreferencesUpdate
from finvisor.services.filter_store import FilterStore

router = APIRouter()

@router.get("/", response_model=FilterPreferences)
async def get_filters(store: FilterStore = Depends(get_filter_store)):
    """Filters remembered for the current user"""
    return store.load()

@router.put("/", response_model=FilterPreferences)
async def update_filters(
    update: FilterPreferencesUpdate,
    store: FilterStore = Depends(get_filter_store)
):
    """Update some of the remembered filters"""
    changes = update.model_dump(exclude_unset=True)
    if "date_from" in changes or "date_to" in changes:
        current = store.load()
        store.set_date_range(
            changes.get("date_from", current.date_from),
            changes.get("date_to", current.date_to)
        )
    if changes.get("client_id") is not None:
        store.set_client_id(changes["client_id"])
    if changes.get("member_id") is not None:
        store.set_member_id(changes["member_id"])
    return store.load()

@router.delete("/", response_model=FilterPreferences)
async def reset_filters(store: FilterStore = Depends(get_filter_store)):
    """Forget the remembered filters"""
    return store.reset()
