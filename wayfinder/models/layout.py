from pydantic import BaseModel, ConfigDict, Field

class Position(BaseModel):
    x: float
    y: float

class LayoutConfig(BaseModel):
    """Tuning knobs for the force-directed layout. Defaults suit a personal map of a few dozen concepts."""
    model_config = ConfigDict(frozen=True)

    iterations: int = Field(default=50, gt=0)
    canvas_area: float = Field(default=800 * 600, gt=0)
    min_radius: float = Field(default=200, gt=0)
    radius_per_node: float = Field(default=30, gt=0)
    repulsion_strength: float = Field(default=0.1, gt=0)
    attraction_strength: float = Field(default=0.05, gt=0)
    # Upper bound on how much of an edge's length one endpoint may travel per
    # attraction step; below 0.5 the endpoints can never cross each other.
    max_pull_fraction: float = Field(default=0.25, gt=0, lt=0.5)
