"""
Streamlit Main App - TerreFVG farm map, concierge and passport
"""
import logging
import os
import sys

from dotenv import load_dotenv
load_dotenv()

import streamlit as st
from streamlit_folium import st_folium

_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _root not in sys.path:
    sys.path.insert(0, _root)

from agents.gemini import has_credentials
from app_state import AppMode, AppState
from concierge import BOT, SUGGESTIONS, ConciergeSession
from database import VisitedStore, init_db
from farm_data import FILTER_CATEGORIES, category_color
from map_view import MapView

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# Configure page
st.set_page_config(
    page_title="Mappa TerreFVG",
    page_icon="🌾",
    layout="wide",
    initial_sidebar_state="expanded",
)


@st.cache_resource(show_spinner=False)
def get_engine():
    return init_db()


# Initialize session state
if "app" not in st.session_state:
    st.session_state.app = AppState(VisitedStore(get_engine()))
if "map_view" not in st.session_state:
    st.session_state.map_view = MapView()
if "concierge" not in st.session_state:
    st.session_state.concierge = None


def app_state() -> AppState:
    return st.session_state.app


def sidebar():
    state = app_state()
    with st.sidebar:
        st.title("🌾 TerreFVG")
        st.caption("Aziende agricole del Friuli Venezia Giulia")

        if st.button("🗺️ Mappa", use_container_width=True):
            close_concierge()
            state.clear_selection()
            state.mode = AppMode.EXPLORE
            st.rerun()

        if st.button("✨ Crea Itinerario", use_container_width=True):
            open_concierge()
            st.rerun()

        visited = len(state.visited)
        label = f"📖 Passaporto ({visited})" if visited else "📖 Passaporto"
        if st.button(label, use_container_width=True):
            close_concierge()
            state.open_passport()
            st.rerun()

        st.divider()
        if st.button("🔄 Ricarica mappa", use_container_width=True):
            reload_map()
            st.rerun()


def reload_map():
    """Tear down the map view and mount a fresh one on the next run."""
    st.session_state.map_view.close()
    st.session_state.map_view = MapView()
    st.session_state.pop("last_click", None)


def open_concierge():
    app_state().open_concierge()
    if st.session_state.concierge is None:
        st.session_state.concierge = ConciergeSession(app_state().farms)


def close_concierge():
    session = st.session_state.concierge
    if session is not None:
        session.close()
    st.session_state.concierge = None
    app_state().close_concierge()


def main():
    sidebar()

    mode = app_state().mode
    if mode == AppMode.AI_CONCIERGE:
        show_concierge()
    elif mode == AppMode.PASSPORT:
        show_passport()
    else:
        show_explore()


# ── Explore ─────────────────────────────────────────────────────────────────

def show_filters():
    state = app_state()
    st.markdown(f"### Mappa TerreFVG\n{state.summary_line()}")

    cols = st.columns(len(FILTER_CATEGORIES) + 1)
    for col, cat in zip(cols, FILTER_CATEGORIES):
        with col:
            active = cat["id"] in state.active_filters
            if st.button(
                cat["label"],
                key=f"filter_{cat['id'].value}",
                type="primary" if active else "secondary",
                use_container_width=True,
            ):
                state.toggle_filter(cat["id"])
                st.rerun()
    if state.active_filters:
        with cols[-1]:
            if st.button("Reset", key="filter_reset", use_container_width=True):
                state.reset_filters()
                st.rerun()


def show_map():
    state = app_state()
    view: MapView = st.session_state.map_view
    view.on_select = state.select_farm
    view.update(state.displayed_farms(), state.highlighted_ids())

    output = st_folium(
        view.surface.map,
        height=560,
        use_container_width=True,
        key="farm_map",
        returned_objects=["last_object_clicked"],
    )

    clicked = (output or {}).get("last_object_clicked")
    if clicked and clicked != st.session_state.get("last_click"):
        st.session_state.last_click = clicked
        before = state.selected_farm_id
        view.surface.dispatch_click(clicked["lat"], clicked["lng"])
        if state.selected_farm_id != before:
            st.rerun()


def show_itinerary_panel():
    state = app_state()
    itinerary = state.active_itinerary
    if itinerary is None:
        return

    with st.container(border=True):
        head, close = st.columns([4, 1])
        with head:
            st.markdown("**🛤️ Itinerario Attivo**")
        with close:
            if st.button("Chiudi", key="close_itinerary"):
                state.clear_itinerary()
                st.rerun()

        st.markdown(f"#### {itinerary.title}")
        st.caption(itinerary.description)
        for number, farm, reason in state.itinerary_stops():
            if st.button(f"{number}. {farm.name}", key=f"stop_{number}_{farm.id}",
                         use_container_width=True):
                state.select_farm(farm.id)
                st.rerun()
            st.caption(reason)


def show_farm_detail():
    state = app_state()
    farm = state.selected_farm()
    if farm is None:
        st.info("📍 Seleziona un'azienda sulla mappa per vederne la scheda.")
        return

    visited = state.has_visited(farm.id)
    with st.container(border=True):
        st.image(f"https://picsum.photos/seed/{farm.id}/800/600", use_container_width=True)

        logo_col, title_col = st.columns([1, 3])
        with logo_col:
            st.image(farm.logo, width=80)
        with title_col:
            st.subheader(farm.name)
            if visited:
                st.success("VISITATA")
        st.caption(f"📍 {farm.address}")

        st.write(farm.description)

        st.markdown("**Specialità**")
        st.info(farm.specialty)

        st.markdown("#### Prodotti")
        prod_cols = st.columns(2)
        for idx, product in enumerate(farm.products):
            bg, fg = category_color(product.category)
            with prod_cols[idx % 2]:
                st.markdown(
                    f'<span style="display:inline-block;width:24px;height:24px;border-radius:50%;'
                    f'background:{bg};color:{fg};text-align:center;line-height:24px;'
                    f'font-weight:bold;font-size:12px;">{product.category.value[0]}</span> '
                    f"{product.name}",
                    unsafe_allow_html=True,
                )

        st.markdown("#### Le Persone")
        if farm.owners:
            owner_cols = st.columns(len(farm.owners))
            for col, owner in zip(owner_cols, farm.owners):
                with col:
                    st.image(owner.photo_url, width=64)
                    st.markdown(f"**{owner.name}**")
                    st.caption(owner.role.upper())

        if visited:
            st.button("Timbro Collezionato! ✨", disabled=True, use_container_width=True)
        elif st.button("📍 Check-in Qui", type="primary", use_container_width=True):
            if state.check_in():
                st.toast(f"Timbro aggiunto: {farm.name}")
            st.rerun()

        if st.button("Chiudi scheda", key="close_detail", use_container_width=True):
            state.clear_selection()
            st.rerun()


def show_explore():
    show_filters()

    map_col, side_col = st.columns([3, 2])
    with map_col:
        show_map()
    with side_col:
        show_itinerary_panel()
        show_farm_detail()


# ── Concierge ───────────────────────────────────────────────────────────────

def show_advice(message):
    advice = message.advice
    st.markdown("**🚗 Consigli di viaggio (Powered by Google Maps):**")
    st.write(advice.text)
    links = [c for c in advice.citations if c.uri]
    if links:
        st.caption("Fonti Google Maps:")
        st.markdown(" · ".join(f"[{c.title or 'Link Map'}]({c.uri})" for c in links))
    if message.directions_url:
        st.markdown(f"[Apri il percorso in Google Maps]({message.directions_url})")


def show_itinerary_message(session, message):
    itinerary = message.itinerary
    st.write(message.text)
    st.caption(f"_{itinerary.description}_")
    for idx, step in enumerate(itinerary.steps, 1):
        st.markdown(f"- Tappa {idx}: {session.describe_step(step.farm_id)}: {step.reason}")

    if st.button("🗺️ Visualizza sulla Mappa", key=f"show_{message.id}",
                 type="primary", use_container_width=True):
        app_state().apply_itinerary(itinerary)
        close_concierge()
        st.rerun()

    with st.form(f"directions_{message.id}"):
        where = st.text_input(
            "Dove ti trovi?",
            placeholder="Indirizzo, città o coordinate (46.06, 13.23)",
        )
        if st.form_submit_button("📍 Come arrivo alla 1ª tappa?", use_container_width=True):
            future = session.directions(itinerary, where)
            if future is not None:
                with st.spinner("Calcolo il percorso…"):
                    future.result()
            st.rerun()


def show_concierge():
    session = st.session_state.concierge
    if session is None:
        open_concierge()
        session = st.session_state.concierge

    head, close = st.columns([5, 1])
    with head:
        st.title("✨ Concierge AI")
        st.caption("Pianificatore intelligente TerreFVG")
    with close:
        if st.button("Chiudi", key="close_concierge"):
            close_concierge()
            st.rerun()

    if not has_credentials():
        st.warning("GEMINI_API_KEY non configurata: il concierge non può generare itinerari.")

    for message in session.messages:
        with st.chat_message("assistant" if message.role == BOT else "user",
                             avatar="🤖" if message.role == BOT else "👤"):
            if message.itinerary is not None:
                show_itinerary_message(session, message)
            elif message.advice is not None:
                show_advice(message)
            else:
                st.write(message.text)

    pending = None
    if session.show_suggestions():
        cols = st.columns(len(SUGGESTIONS))
        for col, (label, prompt) in zip(cols, SUGGESTIONS):
            with col:
                if st.button(label, key=f"suggest_{label}", use_container_width=True):
                    pending = prompt

    placeholder = "Fai un'altra richiesta..." if session.last_itinerary else "Descrivi la tua gita ideale..."
    typed = st.chat_input(placeholder, disabled=session.busy)
    request = typed or pending
    if request:
        future = session.ask(request)
        if future is not None:
            with st.spinner("Sto preparando il tuo itinerario…"):
                future.result()
        st.rerun()


# ── Passport ────────────────────────────────────────────────────────────────

def show_passport():
    state = app_state()
    st.title("📖 Passaporto")
    farms = state.visited_farms()
    if not farms:
        st.info("Nessun timbro ancora. Fai check-in nelle aziende che visiti!")
        return

    st.caption(f"{len(farms)} timbri collezionati")
    for farm in farms:
        with st.container(border=True):
            logo_col, info_col = st.columns([1, 5])
            with logo_col:
                st.image(farm.logo, width=56)
            with info_col:
                st.markdown(f"**{farm.name}**")
                st.caption(f"📍 {farm.address}")
                if st.button("Vedi sulla mappa", key=f"passport_{farm.id}"):
                    state.mode = AppMode.EXPLORE
                    state.select_farm(farm.id)
                    st.rerun()


if __name__ == "__main__":
    main()
