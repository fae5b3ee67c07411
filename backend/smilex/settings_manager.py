"""
Display settings (chart grid widths, up/down colour scheme) and the small
number-formatting helpers shared by the views.
"""
from . import storage
from .models import Settings, SettingsUpdate

COLOR_SCHEMES = ("red-up", "red-down")


def clamp_items_per_row(value) -> int:
    """Chart grids show between 1 and 4 items per row."""
    try:
        n = int(value)
    except (TypeError, ValueError):
        return 2
    return max(1, min(4, n))


def get_settings() -> Settings:
    raw = storage.get_store().read(storage.storage_key(storage.KEYS["SETTINGS"]), None)
    if not isinstance(raw, dict):
        return Settings()
    settings = Settings()
    if "metal_items_per_row" in raw:
        settings.metal_items_per_row = clamp_items_per_row(raw["metal_items_per_row"])
    if "market_items_per_row" in raw:
        settings.market_items_per_row = clamp_items_per_row(raw["market_items_per_row"])
    if raw.get("color_scheme") in COLOR_SCHEMES:
        settings.color_scheme = raw["color_scheme"]
    return settings


def save_settings(settings: Settings):
    storage.get_store().save_debounced(
        storage.storage_key(storage.KEYS["SETTINGS"]), settings.model_dump())


def update_settings(update: SettingsUpdate) -> Settings:
    """Apply a partial update; out-of-range widths are clamped."""
    settings = get_settings()
    if update.metal_items_per_row is not None:
        settings.metal_items_per_row = clamp_items_per_row(update.metal_items_per_row)
    if update.market_items_per_row is not None:
        settings.market_items_per_row = clamp_items_per_row(update.market_items_per_row)
    if update.color_scheme is not None:
        if update.color_scheme not in COLOR_SCHEMES:
            raise ValueError(f"color_scheme must be one of {', '.join(COLOR_SCHEMES)}")
        settings.color_scheme = update.color_scheme
    save_settings(settings)
    return settings


def change_color(is_up: bool, scheme: str = "red-up") -> str:
    """Colour for a price move: red means up unless the scheme is red-down."""
    if scheme == "red-down":
        return "green" if is_up else "red"
    return "red" if is_up else "green"


def format_currency(value: float) -> str:
    return f"{value:,.4f}"


def format_percentage(value: float) -> str:
    return f"{'+' if value >= 0 else ''}{value:.2f}%"
