"""Activity sync engine.

Modules:
    orchestrator - Incremental sync cycle (watermark → query → merge → submit → commit)
    backfill     - Manual per-item submission outside the watermark window
    reconcile    - Device workout listing and synced-ID reseed from the backend
    scheduler    - Background trigger (periodic, best-effort)
    dedup        - Activity identity and order-preserving de-duplication
"""
