import html
import re
from datetime import date

import pandas as pd
import streamlit as st
from streamlit_autorefresh import st_autorefresh

from dinebell import labels
from dinebell.config import configure_logging, get_settings
from dinebell.gate import expiry_warning_due
from dinebell.models import OrderStatus
from dinebell.runtime import EngineHandle
from dinebell.storage import SessionStore
from dinebell.toast import ORDERS_PAGE, format_price

PAGES = [ORDERS_PAGE, "Notifications", "Subscription"]

LIMIT_ROWS = [
    ("Products", "maxProducts", "products"),
    ("Categories", "maxCategories", "categories"),
    ("Branches", "maxBranches", "branches"),
    ("Orders", "maxOrders", "orders"),
]


# -------------------------------------------------------------------
# ENGINE (ONE PER PROCESS)
# -------------------------------------------------------------------

@st.cache_resource
def get_engine() -> EngineHandle:
    """Start the background loop + engine once for this Streamlit server."""
    settings = get_settings()
    configure_logging(settings.log_level)
    return EngineHandle.start(settings)


@st.cache_resource
def get_store() -> SessionStore:
    return SessionStore(get_settings().data_dir)


# -------------------------------------------------------------------
# CONNECT SCREEN
# -------------------------------------------------------------------

def connect_screen(store: SessionStore):
    st.markdown(
        "<h2 style='text-align:center;margin-bottom:0.5rem;'>🔔 DineBell</h2>",
        unsafe_allow_html=True,
    )
    st.markdown(
        "<p style='text-align:center;margin-bottom:1.5rem;'>"
        "Connect this screen to your restaurant to receive live orders."
        "</p>",
        unsafe_allow_html=True,
    )

    with st.form("connect", clear_on_submit=False):
        restaurant_id = st.text_input("Restaurant ID")
        branch_id = st.text_input("Branch ID (optional)")
        token = st.text_input("API token", type="password")
        if st.form_submit_button("Connect"):
            if not restaurant_id.strip():
                st.error("Restaurant ID is required")
                return
            store.save("user", {"restaurant_id": restaurant_id.strip(), "token": token.strip()})
            if branch_id.strip():
                store.save("branch", {"id": branch_id.strip()})
            else:
                store.clear("branch")
            st.session_state["active_page"] = ORDERS_PAGE
            st.rerun()


# -------------------------------------------------------------------
# SUBSCRIPTION GATE
# -------------------------------------------------------------------

def whatsapp_link(number: str) -> str:
    digits = re.sub(r"\D", "", number or "")
    return f"https://wa.me/{digits}" if digits else ""


def blocking_screen(decision, settings):
    locale = settings.locale
    st.markdown(
        f"<h2 style='text-align:center;'>🔒 {html.escape(labels.text('block_title', locale))}</h2>",
        unsafe_allow_html=True,
    )
    st.error(labels.block_reason(decision.status, locale))
    st.markdown(labels.text("block_hint", locale))

    if decision.expires_at is not None:
        st.caption(f"Ended on {decision.expires_at.astimezone().strftime('%Y-%m-%d %H:%M')}")

    link = whatsapp_link(settings.support_whatsapp)
    if link:
        st.link_button("💬 Contact us on WhatsApp", link)


def show_expiry_warning_if_needed(decision, settings):
    if not expiry_warning_due(decision, settings.expiry_warning_days):
        return
    today = date.today().isoformat()
    if st.session_state.get("expiry_warn_shown") == today:
        return
    st.warning(
        f"⚠️ Your subscription will expire in **{decision.days_left} day(s)** "
        f"on **{decision.expires_at.astimezone().strftime('%Y-%m-%d')}**. Please renew soon."
    )
    st.session_state["expiry_warn_shown"] = today


# -------------------------------------------------------------------
# NEW ORDER TOAST
# -------------------------------------------------------------------

def render_toast(engine: EngineHandle, toast, settings):
    if toast is None:
        return

    with st.container(border=True):
        st.markdown(f"### 🛎️ {html.escape(toast.title)}")
        st.markdown(
            f"**{html.escape(toast.customer_name or '-')}** · "
            f"#{html.escape(toast.order_number or toast.record_id)}"
        )
        st.markdown(
            f"💰 {format_price(toast.total, settings.currency)} · 🍽️ {toast.item_count} item(s)"
        )

        c1, c2 = st.columns(2)
        if c1.button("👀 View order", key=f"toast_view_{toast.record_id}", width="stretch"):
            engine.view_toast(toast.record_id)
            st.rerun()
        if c2.button("✖ Dismiss", key=f"toast_dismiss_{toast.record_id}", width="stretch"):
            engine.dismiss_toast(toast.record_id)
            st.rerun()


# -------------------------------------------------------------------
# SIDEBAR
# -------------------------------------------------------------------

def sidebar(engine: EngineHandle, state, store: SessionStore, settings):
    with st.sidebar:
        st.markdown(f"## 🔔 {html.escape(settings.app_name)}")
        st.caption(f"Restaurant {state.context.restaurant_id}" if state.context else "")

        branch = st.text_input("Branch ID", value=store.branch_id() or "", key="branch_input")
        if (branch.strip() or None) != store.branch_id():
            if branch.strip():
                store.save("branch", {"id": branch.strip()})
            else:
                store.clear("branch")
            st.rerun()

        sound_on = st.toggle("🔊 Sound alerts", value=state.sound_enabled)
        if sound_on != state.sound_enabled:
            store.save("sound", sound_on)
            engine.set_sound(sound_on)

        st.metric("Unread", state.unread_count)

        connection = state.connection
        if connection.online is None:
            st.caption("⏳ Connecting...")
        elif connection.online:
            st.caption(f"🟢 Online · {connection.last_ok.astimezone().strftime('%H:%M:%S')}")
        else:
            st.caption(f"🔴 Offline · {connection.last_error}")

        st.markdown("---")
        for page in PAGES:
            is_active = st.session_state["active_page"] == page
            btn_type = "primary" if is_active else "secondary"
            label = f"{page} ({state.unread_count})" if page == "Notifications" and state.unread_count else page
            if st.button(label, type=btn_type, width="stretch", key=f"nav_{page}"):
                st.session_state["active_page"] = page
                st.rerun()

        st.markdown("---")
        if st.button("🚪 Disconnect", width="stretch"):
            store.logout()
            engine.dispose()
            st.rerun()


# -------------------------------------------------------------------
# PAGES
# -------------------------------------------------------------------

def orders_page(engine: EngineHandle, state, settings):
    st.subheader("🧾 Orders")
    orders = state.orders
    if not orders:
        st.info("No orders yet.")
        return

    df = pd.DataFrame(
        [
            {
                "Order #": o.order_number or o.id,
                "Customer": o.customer_name,
                "Phone": o.customer_phone,
                "Status": labels.status_label(o.status, settings.locale),
                "Total": format_price(o.total, settings.currency),
                "Items": len(o.items),
                "Created": o.created_at.astimezone().strftime("%Y-%m-%d %H:%M") if o.created_at else "",
            }
            for o in orders
        ]
    )
    st.dataframe(df, width="stretch", hide_index=True)

    st.markdown("#### Update status")
    by_label = {f"#{o.order_number or o.id} · {o.customer_name or '-'}": o for o in orders}
    with st.form("update_status"):
        choice = st.selectbox("Order", list(by_label.keys()))
        statuses = [s.value for s in OrderStatus]
        current = by_label[choice].status if choice else None
        status = st.selectbox(
            "New status",
            statuses,
            index=statuses.index(current) if current in statuses else 0,
            format_func=lambda s: labels.status_label(s, settings.locale),
        )
        notes = st.text_input("Notes (optional)")
        if st.form_submit_button("Update"):
            order = by_label[choice]
            if engine.update_order_status(order.id, status, notes.strip()):
                st.success("Status updated")
            else:
                st.error("Could not update the order. It will refresh on the next poll.")


def notifications_page(engine: EngineHandle, state, settings):
    st.subheader("🔔 Notifications")
    records = state.notifications
    if not records:
        st.info("No notifications.")
        return

    if state.unread_count and st.button("✅ Mark all as read"):
        if not engine.mark_all_read():
            st.error("Could not mark notifications as read")
        st.rerun()

    for n in records:
        with st.container(border=True):
            c1, c2 = st.columns([5, 1])
            badge = "" if n.is_read else "🆕 "
            c1.markdown(f"{badge}**{html.escape(n.title or n.order_number or n.id)}**")
            if n.message:
                c1.markdown(html.escape(n.message))
            c1.caption(
                f"{labels.status_label(n.status, settings.locale)} · "
                f"{format_price(n.total, settings.currency)}"
                + (f" · {n.created_at.astimezone().strftime('%H:%M')}" if n.created_at else "")
            )
            if not n.is_read and c2.button("Read", key=f"read_{n.id}"):
                engine.mark_read(n.id)
                st.rerun()


def subscription_page(engine: EngineHandle, state, settings):
    st.subheader("📅 Subscription")
    decision = state.decision

    c1, c2, c3 = st.columns(3)
    c1.metric("Status", decision.status.value if decision.status else "-")
    c2.metric("Expires", decision.expires_at.astimezone().strftime("%Y-%m-%d") if decision.expires_at else "-")
    c3.metric("Days left", decision.days_left if decision.days_left is not None else "-")

    try:
        usage = engine.usage()
    except Exception as e:
        st.warning(f"Usage unavailable: {e}")
        return
    if usage is None:
        return

    rows = []
    for label, limit_type, attr in LIMIT_ROWS:
        count = getattr(usage, attr)
        check = engine.check_limit(limit_type, count)
        if check.limit == -1:
            limit = "Unlimited"
        elif check.limit is None:
            limit = check.reason
        else:
            limit = str(check.limit)
        rows.append({"Resource": label, "Used": count, "Limit": limit, "Allowed": "✅" if check.allowed else "⛔"})
    st.dataframe(pd.DataFrame(rows), width="stretch", hide_index=True)


# -------------------------------------------------------------------
# MAIN
# -------------------------------------------------------------------

def main():
    settings = get_settings()
    st.set_page_config(
        page_title=settings.app_name,
        page_icon="🔔",
        layout="wide",
    )

    store = get_store()
    engine = get_engine()

    # ============================================================
    # CONNECT
    # ============================================================
    user = store.user()
    if not user or not user.get("restaurant_id"):
        connect_screen(store)
        return

    engine.set_token(user.get("token") or settings.api_token)
    engine.use_context(user["restaurant_id"], store.branch_id())

    if "sound_loaded" not in st.session_state:
        engine.set_sound(store.sound_enabled(settings.sound_enabled))
        st.session_state["sound_loaded"] = True

    # rerun at the gate cadence
    st_autorefresh(interval=settings.subscription_poll_ms, key="dinebell_refresh")

    state = engine.state()

    # ============================================================
    # SUBSCRIPTION GATE
    # ============================================================
    decision = state.decision
    if decision.pending:
        st.info("⏳ Checking subscription...")
        return
    if not decision.active:
        blocking_screen(decision, settings)
        st.stop()

    show_expiry_warning_if_needed(decision, settings)

    # ============================================================
    # LAYOUT
    # ============================================================
    st.session_state.setdefault("active_page", ORDERS_PAGE)
    requested = engine.take_requested_page()
    if requested:
        st.session_state["active_page"] = requested

    render_toast(engine, state.toast, settings)
    sidebar(engine, state, store, settings)

    page = st.session_state["active_page"]
    if page == ORDERS_PAGE:
        orders_page(engine, state, settings)
    elif page == "Notifications":
        notifications_page(engine, state, settings)
    elif page == "Subscription":
        subscription_page(engine, state, settings)


if __name__ == "__main__":
    main()
