"""Reserve oracle reading data model"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ReserveReading:
    """
    One round of a reserve feed, in the shape of latestRoundData().

    Attributes:
        round_id: Round identifier
        answer: Signed reserve value, scaled by 1e18
        started_at: Unix time the round started
        updated_at: Unix time the answer was last updated
        answered_in_round: Round in which the answer was computed
    """
    round_id: int
    answer: int
    started_at: int = 0
    updated_at: int = 0
    answered_in_round: int = 0

    @property
    def is_negative(self) -> bool:
        return self.answer < 0

    def to_dict(self) -> dict:
        return {
            "round_id": self.round_id,
            "answer": str(self.answer),
            "started_at": self.started_at,
            "updated_at": self.updated_at,
            "answered_in_round": self.answered_in_round,
        }
