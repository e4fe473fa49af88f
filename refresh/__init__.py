"""
Rate refresh pipeline components.

Modules:
    windows: Stay-date window generation
    freshness: Skip-vs-refetch decision for a (source, window) unit
    records: Refresh record store and status state machine
    normalizer: Provider rate text to decimal amounts
    upserter: Atomic replacement of stored data points
    registry: Source registry, company resolution and CSV import
    orchestrator: Batch refresh cycle over all sources and windows
    scheduler: APScheduler integration for periodic cycles

Subpackages:
    clients: Provider fetch clients

Usage:
    from core.database import async_session_maker
    from refresh.clients import build_fetch_clients
    from refresh.orchestrator import RefreshOrchestrator

    orchestrator = RefreshOrchestrator(async_session_maker, build_fetch_clients())
    report = await orchestrator.run_cycle()
    print(report.summary())
"""
