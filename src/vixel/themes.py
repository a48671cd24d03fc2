"""Theme palettes shared by every page template."""

from __future__ import annotations

DEFAULT_THEME = "brutal"

THEME_COLORS = {
    "brutal": "#FFFF00",
    "dark": "#1a1a1a",
    "light": "#ffffff",
}

THEME_OPTIONS = (
    ("brutal", "Brutal", "Maximum aggression"),
    ("dark", "Dark", "Easy on the eyes"),
    ("light", "Light", "Clean and bright"),
)

_PALETTES: dict[str, dict[str, str]] = {
    "brutal": {
        "primary_bg": "bg-yellow",
        "secondary_bg": "bg-white",
        "card_bg": "bg-white",
        "primary_text": "text-black",
        "secondary_text": "text-gray-700",
        "border": "border-black",
        "border_thick": "border-4 border-black",
        "primary_button": "btn-red",
        "secondary_button": "btn-white",
        "shadow": "shadow-black",
        "shadow_large": "shadow-black-lg",
        "hover_shadow": "hover-shadow-black",
        "page_gradient": "gradient-candy",
    },
    "dark": {
        "primary_bg": "bg-gray-900",
        "secondary_bg": "bg-gray-800",
        "card_bg": "bg-gray-800",
        "primary_text": "text-white",
        "secondary_text": "text-gray-300",
        "border": "border-gray-600",
        "border_thick": "border-4 border-gray-600",
        "primary_button": "btn-blue-dark",
        "secondary_button": "btn-gray-dark",
        "shadow": "shadow-gray-dark",
        "shadow_large": "shadow-gray-dark-lg",
        "hover_shadow": "hover-shadow-gray-dark",
        "page_gradient": "gradient-night",
    },
    "light": {
        "primary_bg": "bg-white",
        "secondary_bg": "bg-gray-50",
        "card_bg": "bg-white",
        "primary_text": "text-gray-900",
        "secondary_text": "text-gray-600",
        "border": "border-gray-200",
        "border_thick": "border-4 border-gray-300",
        "primary_button": "btn-blue",
        "secondary_button": "btn-gray",
        "shadow": "shadow-gray-light",
        "shadow_large": "shadow-gray-light-lg",
        "hover_shadow": "hover-shadow-gray-light",
        "page_gradient": "gradient-paper",
    },
}

# Accent colours for the category buttons, keyed by category colour name.
CATEGORY_ACCENTS = {
    "red": "accent-red",
    "purple": "accent-purple",
    "blue": "accent-blue",
    "green": "accent-green",
    "orange": "accent-orange",
    "pink": "accent-pink",
    "cyan": "accent-cyan",
    "yellow": "accent-yellow",
    "indigo": "accent-indigo",
    "teal": "accent-teal",
}


def normalize_theme(theme: str | None) -> str:
    return theme if theme in _PALETTES else DEFAULT_THEME


def theme_classes(theme: str | None) -> dict[str, str]:
    """Return the CSS classes for each semantic slot of ``theme``."""

    return dict(_PALETTES[normalize_theme(theme)])


def theme_color(theme: str | None) -> str:
    return THEME_COLORS[normalize_theme(theme)]


def root_classes(
    theme: str | None,
    *,
    reduced_motion: bool = False,
    high_contrast: bool = False,
    font_size: str = "medium",
) -> str:
    """Classes applied to ``<html>`` for the active theme and accessibility options."""

    classes = [f"theme-{normalize_theme(theme)}", f"font-{font_size}"]
    if reduced_motion:
        classes.append("reduced-motion")
    if high_contrast:
        classes.append("high-contrast")
    return " ".join(classes)


__all__ = [
    "CATEGORY_ACCENTS",
    "DEFAULT_THEME",
    "THEME_COLORS",
    "THEME_OPTIONS",
    "normalize_theme",
    "root_classes",
    "theme_classes",
    "theme_color",
]
