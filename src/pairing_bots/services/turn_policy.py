"""Driver swap decisions under the configured turn policy."""

from typing import NamedTuple

from pairing_bots.models.pair_config import AlternateEachRound, TurnPolicy
from pairing_bots.models.protocol_messages import DriverRecommendation
from pairing_bots.models.run_result import RoundResult


ALTERNATE_EACH_ROUND = "alternate_each_round"
NAVIGATOR_REQUESTED_HANDOFF = "navigator_requested_handoff"
CONTINUE_SAME_DRIVER = "continue_same_driver"


class SwapDecision(NamedTuple):
    swap: bool
    reason: str


def decide_driver_swap(
    result: RoundResult,
    consecutive_rounds: int,
    consecutive_checkpoints: int,
    policy: TurnPolicy,
) -> SwapDecision:
    """Decide whether the driver changes after ``result``.

    For the sticky policy an explicit navigator handoff is reported ahead of
    the round cap, and the round cap ahead of the checkpoint cap.
    """
    if isinstance(policy, AlternateEachRound):
        return SwapDecision(True, ALTERNATE_EACH_ROUND)

    if result.navigator_review.driver_recommendation == DriverRecommendation.HANDOFF:
        return SwapDecision(True, NAVIGATOR_REQUESTED_HANDOFF)

    if consecutive_rounds >= policy.max_consecutive_rounds:
        return SwapDecision(True, f"safety_cap_rounds_{policy.max_consecutive_rounds}")

    if consecutive_checkpoints >= policy.max_consecutive_checkpoints:
        return SwapDecision(True, f"safety_cap_checkpoints_{policy.max_consecutive_checkpoints}")

    return SwapDecision(False, CONTINUE_SAME_DRIVER)
