"""AwardScout — mileage enrichment for cash-fare flight search results.

Modules:
    config                      Settings loaded from the environment / .env
    data.currency               Exchange rates and the pluggable converter
    data.airlines               Carrier-name lookup
    services.request_cache      TTL cache for expensive derived searches
    services.cached_award_fetcher Request-cache layer in front of the award provider
    services.mileage_valuation  Dedup, grouping and ranking of award offers
    services.award_stream_client Streaming NDJSON client for the award provider
    services.enrichment_scheduler Visibility-first batched enrichment
    services.enrichment_hub     Per-session publish side of enrichment
    routers.enrichment          Enrichment session endpoints
    routers.awards              Program ranking and time-window endpoints
"""
