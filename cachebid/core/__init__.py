# Core bidding package
from .escrow import EscrowLedger, Payout
from .registry import (
    ArtifactEntry, OwnerEntries, OwnerPage, Registry, EnumerableOwnerSet,
    NULL_ARTIFACT_ID, is_null_identifier,
)
from .pricing import (
    PricingParams, MarketState, BidOutcome,
    price, evaluate_bid, utilization_bps, FULL_UTILIZATION_BPS,
)
from .oracle import CacheOracle, AdmissionResult, InMemoryCacheOracle
from .automation import AutomationCycle, BidRequest, BidResult, CycleReport, Worklist
from .logger import EventLogger, SummaryLogger, CycleSummaryCollector
from .errors import (
    CacheBidError, ErrorCode, ErrorCategory, ErrorResponse,
    InvalidIdentifier, InvalidBid, InvalidAmount, TooManyBids, TooManyEntries,
    AlreadyExists, NotFound, InsufficientBalance, ExceedsCap, Unauthorized, Paused,
)
from .service import CacheBidService, StateSummary, Snapshot

__all__ = [
    "EscrowLedger", "Payout",
    "ArtifactEntry", "OwnerEntries", "OwnerPage", "Registry", "EnumerableOwnerSet",
    "NULL_ARTIFACT_ID", "is_null_identifier",
    "PricingParams", "MarketState", "BidOutcome",
    "price", "evaluate_bid", "utilization_bps", "FULL_UTILIZATION_BPS",
    "CacheOracle", "AdmissionResult", "InMemoryCacheOracle",
    "AutomationCycle", "BidRequest", "BidResult", "CycleReport", "Worklist",
    "EventLogger", "SummaryLogger", "CycleSummaryCollector",
    "CacheBidError", "ErrorCode", "ErrorCategory", "ErrorResponse",
    "InvalidIdentifier", "InvalidBid", "InvalidAmount", "TooManyBids", "TooManyEntries",
    "AlreadyExists", "NotFound", "InsufficientBalance", "ExceedsCap", "Unauthorized", "Paused",
    "CacheBidService", "StateSummary", "Snapshot",
]
