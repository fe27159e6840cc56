"""
Which cached features a confirmed write makes obsolete.
"""

from typing import Dict, Tuple

from cubesync.models.transaction import TransactionKind
from .cache_keys import Feature


INVALIDATION_PATTERNS: Dict[TransactionKind, Tuple[str, ...]] = {
    TransactionKind.PING: (Feature.NFT_STATE,),
    TransactionKind.BURN: (
        Feature.NFT_STATE,
        Feature.BURNED_NFTS,
        Feature.PENDING_REWARDS,
        Feature.GRAVEYARD,
    ),
    TransactionKind.CLAIM: (Feature.BURNED_NFTS, Feature.PENDING_REWARDS),
    TransactionKind.BREED: (Feature.NFT_STATE, Feature.GRAVEYARD),
    TransactionKind.APPROVE: (),
}


def features_for(kind: TransactionKind) -> Tuple[str, ...]:
    return INVALIDATION_PATTERNS.get(kind, ())
