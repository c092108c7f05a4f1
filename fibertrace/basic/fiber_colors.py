# fibertrace/basic/fiber_colors.py

# EIA-598 colour order (rows of 12):
# 1-Blue, 2-Orange, 3-Green, 4-Brown, 5-Slate, 6-White,
# 7-Red, 8-Black, 9-Yellow, 10-Violet, 11-Rose, 12-Aqua
FIBER_COLORS = [
    "Blue", "Orange", "Green", "Brown", "Slate", "White",
    "Red", "Black", "Yellow", "Violet", "Rose", "Aqua",
]

# ABNT (Brazilian) colour order
ABNT_COLORS = [
    "Green", "Yellow", "White", "Blue", "Red", "Violet",
    "Brown", "Pink", "Black", "Gray", "Orange", "Aqua",
]

COLOR_STANDARDS = {
    "EIA598": FIBER_COLORS,
    "ABNT": ABNT_COLORS,
}

# One swatch per physical colour; ABNT Pink/Gray are EIA-598 Rose/Slate
COLOR_HEX = {
    "Blue": "#3b82f6", "Orange": "#f97316", "Green": "#22c55e", "Brown": "#78350f",
    "Slate": "#9ca3af", "Gray": "#9ca3af", "White": "#ffffff", "Red": "#ef4444",
    "Black": "#000000", "Yellow": "#eab308", "Violet": "#a855f7",
    "Rose": "#ec4899", "Pink": "#ec4899", "Aqua": "#22d3ee",
}


def palette(standard: str) -> list[str]:
    """Colour list for a standard name; unknown names raise KeyError."""
    key = str(standard or "").upper().replace("-", "").replace("_", "")
    return COLOR_STANDARDS[key]


def fiber_num_to_color_label(fiber_num: int, standard: str = "EIA598") -> str:
    """
    Map an absolute fiber number (1..N) to the 1..12 colour index + name.
    Examples (EIA598):
      12 -> "12 - Aqua"
      13 -> "1 - Blue"
    """
    colors = palette(standard)
    idx = ((int(fiber_num) - 1) % 12) + 1
    return f"{idx} - {colors[idx-1]}"


def tube_and_fiber_colors(tube_index: int, fiber_index: int, standard: str) -> tuple[str, str]:
    """
    (tube colour, fiber colour) for a 0-based tube and 0-based fiber-in-tube.
    The fiber colour cycle restarts in every tube.
    """
    colors = palette(standard)
    return colors[tube_index % 12], colors[fiber_index % 12]


def color_hex(name: str) -> str:
    """Swatch for a colour name, shared by every standard that names the same colour."""
    return COLOR_HEX[name]
