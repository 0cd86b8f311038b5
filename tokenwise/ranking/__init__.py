"""
Holder ranking package — ranked Top-N snapshot of the tracked token's holders.
"""

from tokenwise.ranking.engine import (
    HolderRankingEngine,
    RankingResult,
    aggregate_by_owner,
    assign_ranks,
)

__all__ = ["HolderRankingEngine", "RankingResult", "aggregate_by_owner", "assign_ranks"]
