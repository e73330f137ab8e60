"""
Batch translation pipeline.

    markers        - chapter marker protocol and incremental scanner
    reconstructor  - delta stream to per-chapter events
    orchestrator   - state machine, persistence and progress reporting

Import from the submodules directly, e.g.
``from lingua_scripter.core.batch.orchestrator import BatchOrchestrator``.
"""
