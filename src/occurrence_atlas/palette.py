"""Per-species marker styling for downstream map renderers.

Colors are assigned by descending record count, so the most common species
always get the first (most distinct) colors.
"""

from __future__ import annotations

from dataclasses import dataclass

# matplotlib "tab20", reordered so adjacent entries differ in hue
_SPECIES_COLORS = [
    "#1f77b4",  # blue
    "#ff7f0e",  # orange
    "#2ca02c",  # green
    "#d62728",  # red
    "#9467bd",  # purple
    "#8c564b",  # brown
    "#e377c2",  # pink
    "#7f7f7f",  # grey
    "#bcbd22",  # olive
    "#17becf",  # cyan
    "#aec7e8",  # light blue
    "#ffbb78",  # light orange
    "#98df8a",  # light green
    "#ff9896",  # light red
    "#c5b0d5",  # light purple
    "#c49c94",  # light brown
    "#f7b6d2",  # light pink
    "#c7c7c7",  # light grey
    "#dbdb8d",  # light olive
    "#9edae5",  # light cyan
]

UNKNOWN_SPECIES = "Unknown"


@dataclass(frozen=True)
class SpeciesStyle:
    """Marker style for one species."""

    color: str
    initials: str
    name: str
    record_count: int


def build_species_palette(species_counts: dict[str, int]) -> dict[str, SpeciesStyle]:
    """Assign a color and 2-letter abbreviation to each species.

    Colors repeat after 20 species.  Ties in count are broken by name so
    the assignment is stable for a given input.
    """
    palette: dict[str, SpeciesStyle] = {}
    ranked = sorted(species_counts.items(), key=lambda item: (-item[1], item[0]))
    for i, (name, count) in enumerate(ranked):
        palette[name] = SpeciesStyle(
            color=_SPECIES_COLORS[i % len(_SPECIES_COLORS)],
            initials=species_initials(name or UNKNOWN_SPECIES),
            name=name or UNKNOWN_SPECIES,
            record_count=count,
        )
    return palette


def species_initials(name: str) -> str:
    """Derive a 2-letter abbreviation from a binomial ("Puma concolor" -> "PC")."""
    words = name.split()
    if len(words) >= 2:
        return (words[0][0] + words[-1][0]).upper()
    if len(name) >= 2:
        return name[:2].upper()
    return name.upper()
