"""
ChapterIP - Chapter Licensing & Royalty Engine

Registers written chapters as IP assets, attaches tiered license terms,
registers derivative works against parent assets, and splits royalties
among original creators, derivative creators, the platform, and stakers.

Core Components:
    - license_tiers: Tier and royalty policy registry
    - economics: Chapter pricing and revenue calculators
    - royalty_distribution: Royalty splits, claimable balances, claims
    - derivative_registration: Derivative registration workflow
    - derivative_tree: Derivative lineage queries
    - blockchain_errors: Ledger error classification and retry strategy

Infrastructure:
    - ledger_client: Ledger gateway client (HTTP, HMAC-signed)
    - storage: Pluggable JSON object stores (file, memory)
    - similarity: Content similarity services
    - monitoring: Metrics and structured logging
    - api: Flask blueprints

Usage:
    from engine import create_engine

    engine = create_engine()
    result = engine.derivatives.register_derivative(request)
"""

__version__ = "0.1.0"
