from dataclasses import dataclass

from .evaluator import Outcome


@dataclass(frozen=True)
class ScoringRules:
    """Points for a player's first answering guess in a round.

    Exact answers decay linearly from ``max_points`` at the round start to
    ``min_points`` at the deadline; close answers earn ``close_factor`` of that.
    """
    max_points: int = 1000
    min_points: int = 100
    close_factor: float = 0.5

    def exact_points(self, elapsed: float, duration: float) -> int:
        if duration <= 0:
            return self.max_points
        elapsed = min(max(elapsed, 0.0), float(duration))
        span = self.max_points - self.min_points
        return int(round(self.max_points - span * (elapsed / duration)))

    def points_for(self, outcome: Outcome, elapsed: float, duration: float) -> int:
        if outcome == Outcome.EXACT:
            return self.exact_points(elapsed, duration)
        if outcome == Outcome.CLOSE:
            return int(round(self.exact_points(elapsed, duration) * self.close_factor))
        return 0
