"""Historical collection window sizing.

The window is sized so that, at the subreddit's estimated posting volume, it
holds roughly ``target_items`` posts:

    days = target_items / avg_items_per_day, clamped to [min_days, max_days]
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Dict, Optional

from reddit_collector.config import WindowConfig

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class CollectionWindow:
    subreddit: str
    avg_items_per_day: float
    target_items: int
    computed_days: float
    effective_days: float
    from_timestamp: float
    expected_items: int
    rationale: str


class CollectionWindowCalculator:
    """Derives a bounded lookback window from a target item count."""

    def __init__(self, config: Optional[WindowConfig] = None):
        self.config = config or WindowConfig()
        self.posting_volumes: Dict[str, float] = dict(self.config.posting_volumes)

    def estimated_volume(self, subreddit: str) -> float:
        """Posts per day from the volume table, or the default for unknown or unusable entries."""
        default = self.config.default_items_per_day
        raw = self.posting_volumes.get(subreddit)
        if raw is None:
            return default
        try:
            volume = float(raw)
        except (TypeError, ValueError):
            volume = math.nan
        if not math.isfinite(volume) or volume <= 0:
            logger.warning(f"Invalid posting volume {raw!r} for r/{subreddit}, using default {default:g}/day")
            return default
        return volume

    def compute_window(
        self,
        subreddit: str,
        target_items: int,
        avg_items_per_day: Optional[float] = None,
        now: Optional[float] = None,
    ) -> CollectionWindow:
        """
        Compute the lookback window for a subreddit.

        Args:
            subreddit: Subreddit name (looked up in the volume table)
            target_items: Number of posts the window should cover
            avg_items_per_day: Override for the table estimate; ignored unless
                finite and positive
            now: Reference epoch seconds (defaults to the current time)

        Returns:
            CollectionWindow with the clamped day count and its rationale
        """
        if now is None:
            now = time.time()

        avg = avg_items_per_day
        if avg is None or not math.isfinite(avg) or avg <= 0:
            if avg is not None:
                logger.warning(
                    f"Invalid avg_items_per_day {avg!r} for r/{subreddit}, using volume table"
                )
            avg = self.estimated_volume(subreddit)

        min_days, max_days = self.config.min_days, self.config.max_days
        computed = target_items / avg
        if computed < min_days:
            effective = float(min_days)
            rationale = (
                f"{target_items} items at {avg:g}/day is {computed:.1f} days, "
                f"below minimum; constrained to {min_days} days"
            )
        elif computed > max_days:
            effective = float(max_days)
            rationale = (
                f"{target_items} items at {avg:g}/day is {computed:.1f} days, "
                f"above maximum; constrained to {max_days} days"
            )
        else:
            effective = computed
            rationale = (
                f"{target_items} items at {avg:g}/day is {computed:.1f} days, within "
                f"[{min_days}, {max_days}]"
            )

        window = CollectionWindow(
            subreddit=subreddit,
            avg_items_per_day=avg,
            target_items=target_items,
            computed_days=computed,
            effective_days=effective,
            from_timestamp=now - effective * SECONDS_PER_DAY,
            expected_items=round(effective * avg),
            rationale=rationale,
        )
        logger.debug(f"Collection window for r/{subreddit}: {rationale}")
        return window

    def update_volume_estimate(self, subreddit: str, observed_items_per_day: float) -> float:
        """
        Fold an observed posting rate into the volume table.

        Uses exponential smoothing so a single unusual day does not swing the
        window. Returns the new estimate.
        """
        if not math.isfinite(observed_items_per_day) or observed_items_per_day <= 0:
            logger.warning(f"Ignoring invalid observed volume {observed_items_per_day!r} for r/{subreddit}")
            return self.estimated_volume(subreddit)

        factor = self.config.smoothing_factor
        previous = self.estimated_volume(subreddit)
        updated = previous * (1 - factor) + observed_items_per_day * factor
        self.posting_volumes[subreddit] = updated
        logger.info(f"Posting volume for r/{subreddit}: {previous:g} -> {updated:g}/day")
        return updated
