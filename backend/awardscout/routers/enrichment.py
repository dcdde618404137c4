"""Enrichment router — start a session, report visibility, poll progress and results."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from awardscout.schemas.award import RawAwardOffer
from awardscout.schemas.enrichment import (
    AddItinerariesRequest,
    EnrichmentSearchRequest,
    ProgressResponse,
    StatusResponse,
    VisibilityRequest,
)
from awardscout.services.enrichment_hub import EnrichmentHub

logger = logging.getLogger(__name__)

router = APIRouter()


def get_hub(request: Request) -> EnrichmentHub:
    return request.app.state.enrichment_hub


def _status(hub: EnrichmentHub) -> StatusResponse:
    status = hub.scheduler.status()
    progress = hub.scheduler.progress()
    return StatusResponse(
        queue_size=status.queue_size,
        enriched_count=status.enriched_count,
        in_progress_count=status.in_progress_count,
        failed_count=status.failed_count,
        is_processing=status.is_processing,
        progress=ProgressResponse(
            total=progress.total,
            completed=progress.completed,
            in_progress=sorted(progress.in_progress),
            failed=sorted(progress.failed),
        ),
        carriers=hub.carriers(),
    )


@router.post("/search")
async def start_search(req: EnrichmentSearchRequest, hub: EnrichmentHub = Depends(get_hub)):
    """Start a new enrichment session for a fresh set of cash-fare results."""
    added = hub.start_search(req.itineraries, req.search_params, req.visible_ids)
    return {"added": added, "status": _status(hub)}


@router.post("/itineraries")
async def add_itineraries(req: AddItinerariesRequest, hub: EnrichmentHub = Depends(get_hub)):
    """Queue another page of itineraries in the current session."""
    if not hub.has_session:
        raise HTTPException(status_code=409, detail="No active enrichment session")
    added = hub.add_itineraries(req.itineraries, req.visible_ids)
    return {"added": added, "status": _status(hub)}


@router.post("/visibility")
async def update_visibility(req: VisibilityRequest, hub: EnrichmentHub = Depends(get_hub)):
    if not hub.has_session:
        raise HTTPException(status_code=409, detail="No active enrichment session")
    return {"reordered": hub.update_visibility(req.visible_ids)}


@router.get("/status", response_model=StatusResponse)
async def get_status(hub: EnrichmentHub = Depends(get_hub)):
    return _status(hub)


@router.get("/offers/{carrier_code}", response_model=list[RawAwardOffer])
async def get_offers(carrier_code: str, hub: EnrichmentHub = Depends(get_hub)):
    offers = hub.offers_for(carrier_code)
    if not offers:
        raise HTTPException(status_code=404, detail=f"No award offers for {carrier_code.upper()}")
    return offers


@router.get("/cache")
async def get_cache_stats(hub: EnrichmentHub = Depends(get_hub)):
    return hub.cache_stats()
