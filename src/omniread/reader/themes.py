"""Color schemes and the style rules a render surface applies for a theme."""

from __future__ import annotations

from omniread.library.models import ColorScheme, Theme

PALETTES: dict[ColorScheme, dict[str, str]] = {
    ColorScheme.LIGHT: {"color": "#1a1a1a", "background": "#fafafa"},
    ColorScheme.DARK: {"color": "#cccccc", "background": "#242424"},
    ColorScheme.SEPIA: {"color": "#5b4636", "background": "#f4ecd8"},
}

FONT_FAMILIES = ("serif", "sans-serif", "monospace")


def theme_rules(theme: Theme) -> dict[str, dict[str, str]]:
    palette = PALETTES[theme.color_scheme]
    return {
        "body": {
            "color": palette["color"],
            "background": palette["background"],
            "font-family": theme.font_family,
            "font-size": f"{theme.font_scale}%",
        }
    }


def next_font_family(current: str) -> str:
    if current not in FONT_FAMILIES:
        return FONT_FAMILIES[0]
    return FONT_FAMILIES[(FONT_FAMILIES.index(current) + 1) % len(FONT_FAMILIES)]


def next_color_scheme(current: ColorScheme) -> ColorScheme:
    schemes = list(ColorScheme)
    return schemes[(schemes.index(current) + 1) % len(schemes)]
