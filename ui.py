from __future__ import annotations

import logging
from html import escape
from typing import Sequence

import streamlit as st

from errors import format_error_for_toast

logger = logging.getLogger(__name__)

STATUS_COLORS = {
    "submitted": "#1E5CCB",
    "screening": "#8B5CF6",
    "conditional_offer": "#F59E0B",
    "unconditional_offer": "#10B981",
    "cas_loa": "#0EA5E9",
    "visa": "#6366F1",
    "enrolled": "#059669",
    "withdrawn": "#6B7280",
    "rejected": "#DC2626",
}


def inject_portal_css() -> None:
    st.markdown(
        """
        <style>
            :root {
                --portal-primary: #1E40AF;
                --portal-accent: #F97316;
                --text-main: #1b2f4b;
                --text-muted: #4d6581;
                --surface: #ffffff;
                --border: #d1def1;
            }
            [data-testid="stAppViewContainer"] {
                background: linear-gradient(180deg, #ffffff 0%, #f4f8ff 100%);
                color: var(--text-main);
            }
            .portal-stepper {
                display: flex;
                gap: 0.32rem;
                flex-wrap: wrap;
                margin-bottom: 0.5rem;
            }
            .portal-step {
                padding: 0.18rem 0.58rem;
                border-radius: 999px;
                border: 1px solid var(--border);
                color: #5a6f83;
                font-size: 0.74rem;
                background: var(--surface);
            }
            .portal-step.active {
                border-color: var(--portal-primary);
                background: var(--portal-primary);
                color: #ffffff;
            }
            .portal-step.done {
                border-color: #a6c4ea;
                background: #eaf2ff;
                color: #2f5f9e;
            }
            .portal-card {
                border: 1px solid var(--border);
                border-radius: 14px;
                padding: 1rem;
                margin-bottom: 1rem;
                background: linear-gradient(160deg, var(--surface), #f5f8ff);
            }
            .portal-meter {
                margin: 0.35rem 0 0.8rem 0;
            }
            .portal-meter-head {
                display: flex;
                justify-content: space-between;
                font-size: 0.8rem;
                color: var(--text-muted);
            }
            .portal-meter-track {
                height: 0.45rem;
                border-radius: 999px;
                background: #e5edf8;
                overflow: hidden;
            }
            .portal-meter-fill {
                height: 100%;
                background: linear-gradient(90deg, var(--portal-primary), var(--portal-accent));
            }
            .portal-badge {
                display: inline-block;
                padding: 0.12rem 0.55rem;
                border-radius: 999px;
                color: #ffffff;
                font-size: 0.75rem;
                font-weight: 600;
            }
        </style>
        """,
        unsafe_allow_html=True,
    )


def render_progress(step: int, total: int, titles: Sequence[str] | None = None) -> None:
    chips = []
    for i in range(1, total + 1):
        klass = "portal-step"
        if i < step:
            klass += " done"
        elif i == step:
            klass += " active"
        label = titles[i - 1] if titles and len(titles) >= i else f"Step {i}"
        chips.append(f"<span class='{klass}'>{escape(label)}</span>")
    st.markdown(f"<div class='portal-stepper'>{''.join(chips)}</div>", unsafe_allow_html=True)
    pct = max(0.0, min(1.0, step / max(1, total)))
    render_meter("Progress", pct, f"Step {step} of {total}")


def render_meter(label: str, pct: float, value_text: str | None = None) -> None:
    pct = max(0.0, min(1.0, pct))
    pct_text = value_text or f"{int(round(pct * 100))}%"
    st.markdown(
        f"""
        <div class="portal-meter">
            <div class="portal-meter-head">
                <span>{escape(label)}</span>
                <span>{escape(pct_text)}</span>
            </div>
            <div class="portal-meter-track">
                <div class="portal-meter-fill" style="width: {pct * 100:.1f}%;"></div>
            </div>
        </div>
        """,
        unsafe_allow_html=True,
    )


def render_status_badge(status: str, label: str) -> None:
    color = STATUS_COLORS.get(status, "#6B7280")
    st.markdown(
        f"<span class='portal-badge' style='background:{color}'>{escape(label)}</span>",
        unsafe_allow_html=True,
    )


def notify(title: str, description: str = "", icon: str = "✅") -> None:
    st.toast(f"**{title}**\n\n{description}" if description else f"**{title}**", icon=icon)


def notify_error(error: BaseException, fallback: str) -> None:
    """Log a caught failure and surface it as a toast."""
    logger.error("%s: %s", fallback, error, exc_info=error)
    message = format_error_for_toast(error, fallback)
    notify(message["title"], message["description"], icon="⚠️")


def notify_warning(title: str, description: str = "") -> None:
    notify(title, description, icon="⚠️")
