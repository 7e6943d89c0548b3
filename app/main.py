import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
from datetime import date

import pandas as pd
import plotly.express as px
import streamlit as st

from studyspend.aggregator import top_categories
from studyspend.auth import GOOGLE
from studyspend.config import Config
from studyspend.domain import CATEGORY_NAMES, ExpenseDraft, month_key
from studyspend.errors import SyncError, ValidationError
from studyspend.export import export_filename
from studyspend.formatting import format_currency, format_percent
from studyspend.logger import setup_logger
from studyspend.memory import build_gateway
from studyspend.session import SessionManager, SessionStatus

logger = setup_logger("studyspend.app", Config.LOG_LEVEL)
Config.validate()

st.set_page_config(page_title="StudySpend Pro", layout="wide")


def run(coro):
    return asyncio.run(coro)


def money(amount) -> str:
    return format_currency(amount, Config.CURRENCY_SYMBOL)


@st.cache_resource(show_spinner=False)
def get_gateway():
    return build_gateway(Config.SEED_PATH)


@st.cache_resource(show_spinner=False)
def get_manager() -> SessionManager:
    identity, store = get_gateway()
    manager = SessionManager(identity, store, idle_timeout_minutes=Config.IDLE_TIMEOUT_MINUTES)
    run(manager.start())
    return manager


# Built once per process so accounts, expenses and the signed-in user survive reloads.
identity, _ = get_gateway()
manager = get_manager()

# Every rerun is a user input event: check the idle window, then reset it.
if run(manager.check_idle()):
    st.warning("You were signed out after a period of inactivity.")
manager.record_activity()

if "flash" in st.session_state:
    st.success(st.session_state.pop("flash"))


def show_error(error: Exception) -> None:
    if isinstance(error, ValidationError):
        for message in error.errors.values():
            st.error(message)
    elif isinstance(error, SyncError):
        st.error(error.user_message)
    else:
        raise error


def records_to_df(records) -> pd.DataFrame:
    rows = [
        {
            "Date": r.date,
            "Description": r.description,
            "Category": r.category.value,
            "Amount": money(r.amount),
            "Notes": r.notes,
        }
        for r in records
    ]
    return pd.DataFrame(rows, columns=["Date", "Description", "Category", "Amount", "Notes"])


def auth_screen() -> None:
    st.title("💸 StudySpend Pro")
    st.caption("Track your spending against a rolling budget.")

    login_tab, register_tab = st.tabs(["Login", "Register"])

    with login_tab:
        with st.form("login-form"):
            email = st.text_input("Email", key="login-email")
            password = st.text_input("Password", type="password", key="login-password")
            submitted = st.form_submit_button("Login")
        if submitted:
            try:
                run(manager.sign_in(email, password))
                st.rerun()
            except (ValidationError, SyncError) as e:
                show_error(e)

        if GOOGLE in identity.oauth_providers and st.button("Continue with Google"):
            try:
                if run(manager.sign_in_with_oauth(GOOGLE)) is not None:
                    st.rerun()
            except SyncError as e:
                show_error(e)

    with register_tab:
        with st.form("register-form"):
            name = st.text_input("Full name", key="register-name")
            email = st.text_input("Email", key="register-email")
            password = st.text_input("Password", type="password", key="register-password")
            confirm = st.text_input("Confirm password", type="password", key="register-confirm")
            submitted = st.form_submit_button("Create account")
        if submitted:
            try:
                run(manager.sign_up(name, email, password, confirm))
                st.session_state.flash = "Account created successfully!"
                st.rerun()
            except (ValidationError, SyncError) as e:
                show_error(e)


def dashboard_page(session) -> None:
    st.title("🏠 Dashboard")
    summary = session.summary()

    k1, k2, k3, k4 = st.columns(4)
    with k1:
        st.metric("Total Spent", money(summary.total_spent))
    with k2:
        st.metric("Remaining", money(summary.remaining))
    with k3:
        st.metric("Today", money(summary.today_spent), delta=f"{summary.today_count} expenses", delta_color="off")
    with k4:
        st.metric("Daily Average", money(summary.daily_average))

    st.progress(float(summary.progress_percent) / 100, text=f"{format_percent(summary.progress_percent)} of {money(summary.budget_amount)} used")
    st.caption(f"{summary.days_left} days left in this period")

    left, right = st.columns([3, 2])
    with left:
        st.subheader("📊 Spending by Category")
        top = list(top_categories(session.ledger.all(), k=len(CATEGORY_NAMES)))
        if top:
            df_cat = pd.DataFrame([{"Category": c.value, "Total": float(t)} for c, t in top])
            fig_cat = px.pie(df_cat, values="Total", names="Category", hole=0.4)
            fig_cat.update_layout(height=320, margin=dict(t=10, b=10, l=10, r=10))
            st.plotly_chart(fig_cat, use_container_width=True)
        else:
            st.info("No expenses yet. Add one to see your breakdown.")
    with right:
        st.subheader("🕑 Recent Activity")
        recent = session.recent()
        if recent:
            st.table(records_to_df(recent)[["Date", "Description", "Amount"]])
        else:
            st.info("Nothing recorded yet.")


def add_expense_page(session) -> None:
    st.title("➕ Add Expense")
    with st.form("expense-form", clear_on_submit=True):
        description = st.text_input("Description")
        amount = st.text_input("Amount")
        category = st.selectbox("Category", options=CATEGORY_NAMES)
        spent_on = st.date_input("Date", value=date.today())
        notes = st.text_area("Notes (optional)")
        submitted = st.form_submit_button("Add Expense")

    if submitted:
        draft = ExpenseDraft(description=description, amount=amount, category=category, date=spent_on, notes=notes)
        try:
            expense = run(session.add_expense(draft))
            st.success(f"Added {expense.description}: {money(expense.amount)}")
            if month_key(expense.date) != session.period_key:
                st.info(f"Saved under {month_key(expense.date)}. Pick that month in the sidebar to see it.")
        except (ValidationError, SyncError) as e:
            show_error(e)


def history_page(session) -> None:
    st.title("🧾 History")

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        search = st.text_input("Search")
    with col2:
        category = st.selectbox("Category", options=["All", *CATEGORY_NAMES])
    with col3:
        date_from = st.date_input("From", value=None)
    with col4:
        date_to = st.date_input("To", value=None)

    view = session.history(search, category, date_from, date_to)

    m1, m2, m3 = st.columns(3)
    m1.metric("Expenses", view.count)
    m2.metric("Total", money(view.total_amount))
    m3.metric("Average", money(view.average_amount))

    if view.records:
        st.dataframe(records_to_df(view.records), use_container_width=True, hide_index=True)
        st.download_button(
            "⬇ Download CSV",
            session.export_csv(view.records),
            file_name=export_filename(session.period_key),
            mime="text/csv",
        )
    else:
        st.info("No expenses match these filters.")


def settings_page(session) -> None:
    st.title("⚙️ Settings")
    period = session.period
    st.write(f"Current period: **{period.start_date:%d %b %Y}** to **{period.end_date:%d %b %Y}**")

    with st.form("budget-form"):
        budget = st.number_input("Budget amount", min_value=0, value=int(period.budget_amount), step=500)
        duration = st.number_input("Period length (days)", min_value=1, max_value=31, value=period.duration_days)
        submitted = st.form_submit_button("Save")
    if submitted:
        try:
            run(session.update_budget(int(duration), budget))
            st.success("Budget updated.")
        except (ValidationError, SyncError) as e:
            show_error(e)

    st.subheader("Reset period")
    st.caption("Deletes every expense in this period and starts a new one today.")
    confirm = st.checkbox("I understand this cannot be undone")
    if st.button("Reset period", disabled=not confirm):
        try:
            run(session.reset_period())
            st.success("Period reset.")
        except SyncError as e:
            show_error(e)


if manager.status is not SessionStatus.SIGNED_IN or manager.session is None:
    auth_screen()
    st.stop()

session = manager.session
user = session.user

st.sidebar.markdown("### 👤 Profile")
st.sidebar.caption(f"Hello, {user.display_name or user.email}!")

today = date.today()
months = [month_key(d) for d in pd.date_range(end=today, periods=12, freq="MS")][::-1]
if month_key(today) not in months:
    months.insert(0, month_key(today))
selected = st.sidebar.selectbox("Month", options=months, index=months.index(session.period_key) if session.period_key in months else 0)
session.switch_period(selected)

menu = st.sidebar.radio("Menu", ["🏠 Dashboard", "➕ Add Expense", "🧾 History", "⚙️ Settings"])

if st.sidebar.button("Sign out"):
    run(manager.sign_out())
    st.rerun()

if menu == "🏠 Dashboard":
    dashboard_page(session)
elif menu == "➕ Add Expense":
    add_expense_page(session)
elif menu == "🧾 History":
    history_page(session)
elif menu == "⚙️ Settings":
    settings_page(session)
