"""
CubeSync

On-chain state synchronization and transaction orchestration for the
CrazyCube NFT game client:
- Resilient JSON-RPC reads with multicall batching
- Redis-backed local state cache with stale fallback
- Graveyard readiness and burn/claim tracking
- Sequenced approval and action transactions
"""

__version__ = "0.1.0"
