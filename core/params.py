"""
Larm -- Effect Parameters
Immutable grain configuration passed through the pipeline unchanged.

The model checks types only. Valid ranges are published in PARAM_RANGES
for callers (UI, API, CLI) to enforce; the pipeline never clamps.
"""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class EffectParameters(BaseModel):
    """Grain controls. JSON accepts snake_case or camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        allow_inf_nan=False,
    )

    size: float = 2.5
    intensity: float = 0.8
    sharpness: float = Field(
        8.0,
        validation_alias=AliasChoices("sharpness", "crystalSharpness", "crystal_sharpness"),
    )
    saturation: float = 1.0
    exposure: float = 0.0

    shadow_grain: float = 1.2
    midtone_grain: float = 1.0
    highlight_grain: float = 0.6
    tonal_smoothness: float = 0.15

    depth: float = 0.4
    chromatic: float = 2.0
    relief: float = 0.3
    layers: float = 3.0  # rounded to an integer count at the engine boundary

    def with_overrides(self, **changes) -> "EffectParameters":
        """Return a copy with some fields replaced (validated)."""
        data = self.model_dump()
        data.update(changes)
        return EffectParameters(**data)


# Inclusive valid ranges, by field name.
PARAM_RANGES = {
    "size": (0.1, 200.0),
    "intensity": (0.0, 200.0),
    "sharpness": (0.0, 20.0),
    "saturation": (0.0, 2.0),
    "exposure": (-2.0, 2.0),
    "shadow_grain": (0.0, 2.0),
    "midtone_grain": (0.0, 2.0),
    "highlight_grain": (0.0, 2.0),
    "tonal_smoothness": (0.01, 1.0),
    "depth": (0.0, 1.0),
    "chromatic": (0.0, 500.0),
    "relief": (0.0, 100.0),
    "layers": (1.0, 5.0),
}

# Integer-stepped controls
INTEGER_PARAMS = {"layers"}

# UI grouping: (section title, [(field, label), ...])
PARAM_SECTIONS = [
    ("General", [
        ("size", "Size"),
        ("intensity", "Intensity"),
        ("sharpness", "Sharpness"),
        ("saturation", "Saturation"),
        ("exposure", "Exposure"),
    ]),
    ("Tonal Distribution", [
        ("shadow_grain", "Shadow Grain"),
        ("midtone_grain", "Midtone Grain"),
        ("highlight_grain", "Highlight Grain"),
        ("tonal_smoothness", "Smoothness"),
    ]),
    ("3D & Advanced", [
        ("depth", "3D Depth"),
        ("chromatic", "Chromatic"),
        ("relief", "Relief"),
        ("layers", "Layers"),
    ]),
]

PARAM_ORDER = [name for _, fields in PARAM_SECTIONS for name, _ in fields]
