"""Simple two-language (en/nl) translation helper."""

_STRINGS: dict[str, dict[str, str]] = {
    "page_title": {
        "en": "Ex Situ",
        "nl": "Ex Situ",
    },
    "label_search": {
        "en": "Search a place",
        "nl": "Zoek een plaats",
    },
    "label_zoom": {
        "en": "Zoom",
        "nl": "Zoom",
    },
    "label_view": {
        "en": "Viewport (degrees)",
        "nl": "Kaartuitsnede (graden)",
    },
    "label_page_size": {
        "en": "Objects per request",
        "nl": "Objecten per verzoek",
    },
    "label_pages": {
        "en": "Pages to load",
        "nl": "Te laden pagina's",
    },
    "label_from": {
        "en": "From",
        "nl": "Van",
    },
    "label_to": {
        "en": "To",
        "nl": "Naar",
    },
    "label_institution": {
        "en": "Institution",
        "nl": "Instelling",
    },
    "label_country": {
        "en": "Country",
        "nl": "Land",
    },
    "label_countries_overlay": {
        "en": "Show countries",
        "nl": "Toon landen",
    },
    "btn_load": {
        "en": "Load objects",
        "nl": "Objecten laden",
    },
    "btn_search": {
        "en": "Go",
        "nl": "Ga",
    },
    "btn_download": {
        "en": "Download CSV",
        "nl": "Download CSV",
    },
    "btn_clear_cache": {
        "en": "Clear cache",
        "nl": "Cache legen",
    },
    "placeholder": {
        "en": "Load objects to see where they came from",
        "nl": "Laad objecten om te zien waar ze vandaan komen",
    },
    "loading": {
        "en": "Loading objects",
        "nl": "Objecten laden",
    },
    "stat_links": {
        "en": "Links",
        "nl": "Verbindingen",
    },
    "stat_arcs": {
        "en": "Arcs",
        "nl": "Bogen",
    },
    "stat_countries": {
        "en": "Countries",
        "nl": "Landen",
    },
    "stat_institutions": {
        "en": "Institutions",
        "nl": "Instellingen",
    },
    "heading_routes": {
        "en": "Routes",
        "nl": "Routes",
    },
    "heading_collections": {
        "en": "Collections",
        "nl": "Collecties",
    },
    "heading_objects": {
        "en": "Objects",
        "nl": "Objecten",
    },
    "label_page": {
        "en": "Page",
        "nl": "Pagina",
    },
    "error_fetch": {
        "en": "Could not load objects: {error}",
        "nl": "Objecten konden niet geladen worden: {error}",
    },
    "error_config": {
        "en": "The API is not configured: {error}",
        "nl": "De API is niet geconfigureerd: {error}",
    },
    "error_search": {
        "en": "Place search failed: {error}",
        "nl": "Zoeken mislukt: {error}",
    },
    "search_not_found": {
        "en": "No place found for “{query}”",
        "nl": "Geen plaats gevonden voor “{query}”",
    },
    "search_found": {
        "en": "Centred on {name}",
        "nl": "Gecentreerd op {name}",
    },
    "cache_cleared": {
        "en": "Cache cleared",
        "nl": "Cache geleegd",
    },
}


def t(key: str, lang: str) -> str:
    """Return the translated string for key in lang.

    Falls back to 'en', then to the key itself if not found.
    """
    entry = _STRINGS.get(key)
    if entry is None:
        return key
    return entry.get(lang) or entry.get("en") or key
