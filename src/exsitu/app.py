"""Ex Situ — Streamlit app for browsing where museum objects came from."""

import datetime
import logging

import streamlit as st
from dotenv import load_dotenv
from streamlit_js_eval import streamlit_js_eval

load_dotenv()

from exsitu.compute import (  # noqa: E402
    aggregate_by_country,
    filter_arcs_by_bounds,
    select_arcs,
)
from exsitu.config import Settings, configure_logging  # noqa: E402
from exsitu.errors import ApiError, ConfigError, GeocodingError  # noqa: E402
from exsitu.export import export_filename, records_to_csv, records_to_frame  # noqa: E402
from exsitu.fetch import MuseumApiClient, search_location  # noqa: E402
from exsitu.i18n import t  # noqa: E402
from exsitu.models import WORLD_BOUNDS, Arc, Record, ViewBounds  # noqa: E402
from exsitu.renderers.plotly_map import render_arc_map  # noqa: E402
from exsitu.summary import (  # noqa: E402
    RecordFilters,
    filter_options,
    filter_records,
    list_institutions,
    list_routes,
    paginate,
    summarize,
)

_settings = Settings.from_env()
configure_logging(_settings.log_level)
logger = logging.getLogger(__name__)

_OBJECTS_PER_PAGE = 20
_TOP_N = 15

# --- Language detection (browser-first via streamlit-js-eval) ---
# navigator.language is read once and cached in session_state.
# On the first run the JS call returns None; the rerun fills it in.
if "lang" not in st.session_state:
    _browser_lang: str | None = streamlit_js_eval(
        js_expressions="navigator.language", key="_lang_detect", height=0
    )
    if _browser_lang is not None:
        st.session_state.lang = "nl" if _browser_lang.lower().startswith("nl") else "en"

_lang: str = st.session_state.get("lang", "en")

st.set_page_config(
    page_title=t("page_title", _lang),
    page_icon="⌒",
    layout="wide",
    initial_sidebar_state="expanded",
)

# --- Session state initialization ---
if "records" not in st.session_state:
    st.session_state.records = ()
if "zoom" not in st.session_state:
    st.session_state.zoom = 2.0
if "bounds" not in st.session_state:
    st.session_state.bounds = WORLD_BOUNDS
if "object_page" not in st.session_state:
    st.session_state.object_page = 1

st.markdown(
    """
    <style>
    /* Hide streamlit_js_eval invisible iframe */
    iframe[src*="streamlit_js_eval"] { display: none !important; }
    html, body, [data-testid="stAppViewContainer"], [data-testid="stMain"] {
        background-color: #0d1b35 !important;
        color: #e8e8e8;
    }
    [data-testid="stHeader"], [data-testid="stToolbar"] {
        display: none !important;
    }
    [data-testid="stSidebar"] {
        background-color: #0a1529 !important;
    }
    [data-testid="stMetricValue"] { color: #c9a96e !important; }
    label, [data-testid="stWidgetLabel"] p {
        color: #aaaaaa !important;
        font-size: 0.85rem !important;
    }
    </style>
    """,
    unsafe_allow_html=True,
)


@st.cache_resource
def _api_client() -> MuseumApiClient:
    """One client per server process; its ResponseCache outlives reruns."""
    return MuseumApiClient(_settings)


@st.cache_data(show_spinner=False, max_entries=64)
def _view_arcs(
    records: tuple[Record, ...], zoom: float, bounds: ViewBounds
) -> list[Arc]:
    arcs = select_arcs(records, zoom, bounds)
    return filter_arcs_by_bounds(arcs, bounds)


def _load_records(page_size: int, max_pages: int) -> None:
    bounds: ViewBounds = st.session_state.bounds
    try:
        records = _api_client().fetch_all_records(
            bounds, page_size=page_size, max_pages=max_pages
        )
    except ConfigError as e:
        st.toast(t("error_config", _lang).format(error=e), icon="⚠️")
        return
    except ApiError as e:
        logger.error("Fetching records failed: %s", e)
        st.toast(t("error_fetch", _lang).format(error=e), icon="⚠️")
        return
    st.session_state.records = tuple(records)
    st.session_state.object_page = 1


def _search(query: str) -> None:
    try:
        result = search_location(query, user_agent=_settings.user_agent)
    except GeocodingError as e:
        st.toast(t("error_search", _lang).format(error=e), icon="⚠️")
        return
    if result is None:
        st.toast(t("search_not_found", _lang).format(query=query))
        return
    zoom = max(st.session_state.zoom, 9.0)
    st.session_state.zoom = zoom
    st.session_state.bounds = ViewBounds.around(result.longitude, result.latitude, zoom)
    st.toast(t("search_found", _lang).format(name=result.name))


# --- Sidebar: view, loading, filters, export ---
with st.sidebar:
    query = st.text_input(t("label_search", _lang))
    if st.button(t("btn_search", _lang), key="search_btn") and query.strip():
        _search(query.strip())

    st.slider(t("label_zoom", _lang), 0.0, 18.0, step=0.5, key="zoom")

    with st.expander(t("label_view", _lang)):
        current: ViewBounds = st.session_state.bounds
        north = st.number_input("N", -90.0, 90.0, float(current.north))
        south = st.number_input("S", -90.0, 90.0, float(current.south))
        east = st.number_input("E", -180.0, 180.0, float(current.east))
        west = st.number_input("W", -180.0, 180.0, float(current.west))
        st.session_state.bounds = ViewBounds(
            north=north, south=south, east=east, west=west
        )

    page_size = st.selectbox(t("label_page_size", _lang), [50, 100, 200], index=1)
    max_pages = st.number_input(t("label_pages", _lang), 1, 50, 5)
    if st.button(t("btn_load", _lang), key="load_btn", use_container_width=True):
        with st.spinner(t("loading", _lang)):
            _load_records(int(page_size), int(max_pages))

    records: tuple[Record, ...] = st.session_state.records
    options = filter_options(records)
    filters = RecordFilters(
        origin_places=frozenset(
            st.multiselect(t("label_from", _lang), sorted(options.origin_places))
        ),
        destination_places=frozenset(
            st.multiselect(t("label_to", _lang), sorted(options.destination_places))
        ),
        institutions=frozenset(
            st.multiselect(t("label_institution", _lang), sorted(options.institutions))
        ),
        countries=frozenset(
            st.multiselect(t("label_country", _lang), sorted(options.countries))
        ),
    )
    show_countries = st.checkbox(t("label_countries_overlay", _lang))

    displayed = filter_records(records, filters)
    st.download_button(
        t("btn_download", _lang),
        data=records_to_csv(displayed),
        file_name=export_filename(datetime.date.today()),
        mime="text/csv",
        disabled=not displayed,
        use_container_width=True,
    )
    if st.button(t("btn_clear_cache", _lang), key="clear_cache_btn"):
        try:
            _api_client().clear_cache()
        except ConfigError as e:
            st.toast(t("error_config", _lang).format(error=e), icon="⚠️")
        else:
            st.toast(t("cache_cleared", _lang))

# --- Map ---
if not records:
    st.markdown(
        f"<div style='height:60vh; display:flex; align-items:center; justify-content:center;"
        f" color:#334466; font-size:1.2rem;'>{t('placeholder', _lang)}</div>",
        unsafe_allow_html=True,
    )
    st.stop()

bounds: ViewBounds = st.session_state.bounds
arcs = _view_arcs(tuple(displayed), float(st.session_state.zoom), bounds)
countries = aggregate_by_country(displayed) if show_countries else []
fig = render_arc_map(arcs, countries, bounds)
st.plotly_chart(
    fig,
    use_container_width=True,
    config={"scrollZoom": True, "displayModeBar": False},
)

# --- Stats panel ---
summary = summarize(displayed)
m1, m2, m3, m4 = st.columns(4)
m1.metric(t("stat_links", _lang), f"{summary.total_records:,}")
m2.metric(t("stat_arcs", _lang), f"{summary.arc_count:,}")
m3.metric(t("stat_countries", _lang), f"{len(summary.countries):,}")
m4.metric(t("stat_institutions", _lang), f"{len(summary.institutions):,}")

col_routes, col_collections = st.columns(2)
with col_routes:
    st.subheader(t("heading_routes", _lang))
    st.dataframe(
        [
            {
                t("label_from", _lang): r.origin_place,
                t("label_to", _lang): r.destination_place,
                "#": r.count,
            }
            for r in list_routes(displayed)[:_TOP_N]
        ],
        hide_index=True,
        use_container_width=True,
    )
with col_collections:
    st.subheader(t("heading_collections", _lang))
    st.dataframe(
        [
            {
                t("label_institution", _lang): i.name,
                t("label_country", _lang): ", ".join(p for p in (i.city, i.country) if p),
                "#": i.count,
            }
            for i in list_institutions(displayed)[:_TOP_N]
        ],
        hide_index=True,
        use_container_width=True,
    )

# --- Object list ---
st.subheader(t("heading_objects", _lang))
page = paginate(displayed, st.session_state.object_page, _OBJECTS_PER_PAGE)
if page.page_count > 1:
    st.session_state.object_page = st.number_input(
        t("label_page", _lang), 1, page.page_count, page.page
    )
    page = paginate(displayed, st.session_state.object_page, _OBJECTS_PER_PAGE)
st.dataframe(records_to_frame(page.items), hide_index=True, use_container_width=True)
