"""
Function and event fragments of the contracts the client talks to.
"""

from cubesync.chain.abi import ContractEvent, ContractFunction, EventInput


class CoreABI:
    """Game core (proxy) contract."""

    PING = ContractFunction("ping", ("uint256",))
    BURN_NFT = ContractFunction("burnNFT", ("uint256", "uint32"))
    CLAIM_BURN_REWARDS = ContractFunction("claimBurnRewards", ("uint256",))
    REQUEST_BREED = ContractFunction("requestBreed", ("uint256", "uint256", "uint256"))

    META = ContractFunction(
        "meta",
        ("uint256",),
        ("uint8", "uint8", "uint8", "bool"),
        ("rarity", "initialStars", "gender", "isActivated"),
    )
    BURN_SPLITS = ContractFunction(
        "burnSplits",
        ("uint32",),
        ("uint16", "uint16", "uint16"),
        ("playerBps", "poolBps", "burnBps"),
    )
    BURN_FEE_BPS = ContractFunction("burnFeeBps", (), ("uint256",))
    PAUSED = ContractFunction("paused", (), ("bool",))

    BURN_SCHEDULED = ContractEvent(
        "BurnScheduled",
        (
            EventInput("tokenId", "uint256", indexed=True),
            EventInput("owner", "address", indexed=True),
            EventInput("amount", "uint256"),
            EventInput("claimAt", "uint256"),
            EventInput("waitMin", "uint32"),
        ),
    )


class ReaderABI:
    """Read-only aggregation contract."""

    GET_NFT_SUMMARY = ContractFunction(
        "getNFTSummary",
        ("uint256",),
        (
            "address", "bool", "bool", "uint8", "uint8", "uint8",
            "bool", "uint64", "uint64", "uint256", "uint16", "uint16",
        ),
        (
            "owner", "exists", "isActivated", "rarity", "currentStars", "bonusStars",
            "isInGraveyard", "lastPingTime", "lastBreedTime", "lockedOcta",
            "dynBonusBps", "specBps",
        ),
    )
    GET_BURN_INFO = ContractFunction(
        "getBurnInfo",
        ("uint256",),
        (
            "address", "uint256", "uint256", "uint256", "bool", "uint32",
            "uint256", "uint256", "uint256",
        ),
        (
            "owner", "totalAmount", "claimAt", "graveReleaseAt", "claimed",
            "waitMinutes", "playerAmount", "poolAmount", "burnedAmount",
        ),
    )
    VIEW_GRAVE_WINDOW = ContractFunction(
        "viewGraveWindow",
        ("uint256", "uint256"),
        ("uint256[]", "uint256"),
        ("tokenIds", "total"),
    )
    GET_BREED_QUOTE = ContractFunction(
        "getBreedQuote",
        (),
        ("uint256", "uint256", "uint256", "uint256", "uint256"),
        ("octaCost", "octaaCost", "lpFromOcta", "lpFromPair", "sponsorFee"),
    )


class ERC20ABI:
    ALLOWANCE = ContractFunction("allowance", ("address", "address"), ("uint256",))
    APPROVE = ContractFunction("approve", ("address", "uint256"), ("bool",))


class ERC721ABI:
    APPROVE = ContractFunction("approve", ("address", "uint256"))
    GET_APPROVED = ContractFunction("getApproved", ("uint256",), ("address",))
    IS_APPROVED_FOR_ALL = ContractFunction("isApprovedForAll", ("address", "address"), ("bool",))


class Multicall3ABI:
    AGGREGATE3 = ContractFunction(
        "aggregate3",
        ("(address,bool,bytes)[]",),
        ("(bool,bytes)[]",),
    )
