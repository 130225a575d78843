# ==============================================================================
# Behavior Profile
# ==============================================================================
"""
The aggregated, continuously-updated summary of a session's signals.

The profile holds only counters, running sums and maxima. Flags and the
engagement score are never stored here; they are recomputed from these
fields by ``shopsignal.core.scoring``. No field regresses during a session;
``BehaviorProfile.reset`` is the only way back to zero and is called at a
session boundary.
"""

from typing import Optional

from pydantic import BaseModel, Field

# Categories hovered elements are tracked under. Anything else is ignored.
HOVER_CATEGORIES = (
    "add_to_cart",
    "price",
    "product_image",
    "size_guide",
    "checkout",
    "links",
    "buttons",
)


class ScrollStats(BaseModel):
    max_depth_percent: int = 0
    total_distance: float = 0.0
    direction_changes: int = 0
    reading_time_ms: int = 0
    skimming_time_ms: int = 0
    searching_time_ms: int = 0
    milestones_reached: list[int] = Field(default_factory=list)


class HoverSummary(BaseModel):
    count: int = 0
    total_ms: int = 0
    max_ms: int = 0

    @property
    def avg_ms(self) -> float:
        return self.total_ms / self.count if self.count else 0.0

    def add(self, duration_ms: int) -> None:
        """Fold one completed hover into the running statistics."""
        self.count += 1
        self.total_ms += duration_ms
        self.max_ms = max(self.max_ms, duration_ms)


class PointerStats(BaseModel):
    total_distance: float = 0.0
    peak_velocity: float = Field(default=0.0, description="px/ms")
    acceleration_events: int = 0
    rage_clicks: int = 0
    dead_clicks: int = 0
    hovers: dict[str, HoverSummary] = Field(default_factory=dict)

    def hover(self, category: str) -> HoverSummary:
        """Summary for ``category`` (an empty one if never hovered)."""
        return self.hovers.get(category) or HoverSummary()


class AttentionStats(BaseModel):
    idle_time_ms: int = 0
    engaged_time_ms: int = 0
    hidden_count: int = 0


class InteractionCounters(BaseModel):
    clicks: int = 0
    hovers: int = 0
    scrolls: int = 0
    form_starts: int = 0
    copies: int = 0
    pastes: int = 0


class CommerceStats(BaseModel):
    current_value: float = 0.0
    peak_value: float = 0.0
    add_events: int = 0
    remove_events: int = 0
    last_change_direction: Optional[str] = None
    cart_status: Optional[str] = None


class BehaviorProfile(BaseModel):
    """Per-session aggregate, exclusively owned by the BehaviorAggregator."""

    scroll: ScrollStats = Field(default_factory=ScrollStats)
    pointer: PointerStats = Field(default_factory=PointerStats)
    attention: AttentionStats = Field(default_factory=AttentionStats)
    interactions: InteractionCounters = Field(default_factory=InteractionCounters)
    commerce: CommerceStats = Field(default_factory=CommerceStats)
    viewed_pages: list[str] = Field(default_factory=list)

    def reset(self) -> None:
        """Zero every sub-structure. Only valid at a session boundary."""
        self.scroll = ScrollStats()
        self.pointer = PointerStats()
        self.attention = AttentionStats()
        self.interactions = InteractionCounters()
        self.commerce = CommerceStats()
        self.viewed_pages = []
