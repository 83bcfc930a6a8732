"""
app.py — Appliance Inspector (Streamlit front end)
==================================================
Upload up to 5 appliance photos, optionally ask a question, pay (when
enabled), and read the analysis as formatted cards.

UI only. Upload rules and gateway calls live in analysis_client.py,
report rendering lives in report_formatter.py, downloads in report_export.py.

Run:  streamlit run app.py
"""

import os
from datetime import datetime
from html import escape

import streamlit as st
from dotenv import load_dotenv

from analysis_client import AnalysisClient, SelectedFile, UploadSession, format_file_size
from report_export import ExportTooLarge, export_filename, export_markdown, export_pdf
from report_formatter import format_analysis

load_dotenv()

# ── Must be first ──────────────────────────────────────────────────────────────
st.set_page_config(layout="centered", page_title="Appliance Inspector", page_icon="🔍")

# ── Config ─────────────────────────────────────────────────────────────────────
GATEWAY_URL            = os.environ.get("GATEWAY_URL", "http://localhost:3000")
STRIPE_PUBLISHABLE_KEY = os.environ.get("STRIPE_PUBLISHABLE_KEY", "")
REQUIRE_PAYMENT        = os.environ.get("REQUIRE_PAYMENT", "true").lower() in ("1", "true", "yes", "on")
ANALYSIS_PRICE         = int(os.environ.get("ANALYSIS_PRICE_CENTS", "299")) / 100

if REQUIRE_PAYMENT and not STRIPE_PUBLISHABLE_KEY:
    st.error("⚠️ Server misconfigured: STRIPE_PUBLISHABLE_KEY not set.")
    st.stop()

# ── Styles ─────────────────────────────────────────────────────────────────────
from appliance_styles import INSPECTOR_CSS, HEADER_HTML
st.markdown(INSPECTOR_CSS, unsafe_allow_html=True)
st.markdown(HEADER_HTML, unsafe_allow_html=True)


# ══════════════════════════════════════════════════════════════════════════════
#  SESSION STATE
# ══════════════════════════════════════════════════════════════════════════════
defaults = {
    "upload":       None,     # UploadSession
    "client":       None,     # AnalysisClient
    "uploader_key": 0,
    "stage":        "upload", # upload | payment | results | error
}
for k, v in defaults.items():
    if k not in st.session_state:
        st.session_state[k] = v

if st.session_state.upload is None:
    st.session_state.upload = UploadSession()
if st.session_state.client is None:
    st.session_state.client = AnalysisClient(
        GATEWAY_URL,
        payment_enabled=REQUIRE_PAYMENT,
        publishable_key=STRIPE_PUBLISHABLE_KEY,
    )

upload: UploadSession = st.session_state.upload
client: AnalysisClient = st.session_state.client


def notify(notices):
    for n in notices:
        if n.level == "error":
            st.toast(f"❌ {n.message}")
        elif n.level == "warning":
            st.toast(f"⚠️ {n.message}")
        else:
            st.toast(n.message)


def run_analysis(payment_method: str = ""):
    title, subtext = upload.loading_text()
    with st.spinner(f"{title} {subtext}"):
        result = client.submit_for_analysis(upload, payment_method)

    if "analysis" in result:
        upload.last_result = result["analysis"]
        upload.last_error = None
        st.session_state.stage = "results"
    elif result.get("requires_payment"):
        upload.last_error = result["error"]
        st.session_state.stage = "payment"
    else:
        upload.last_error = result["error"]
        st.session_state.stage = "error"
    st.rerun()


def start_new_analysis():
    upload.reset()
    st.session_state.uploader_key += 1
    st.session_state.stage = "upload"


# ══════════════════════════════════════════════════════════════════════════════
#  RESULTS
# ══════════════════════════════════════════════════════════════════════════════
if st.session_state.stage == "results" and upload.last_result:
    st.markdown(
        f'<div class="analysis-report">{format_analysis(upload.last_result)}</div>',
        unsafe_allow_html=True,
    )
    st.markdown("<br>", unsafe_allow_html=True)
    col_md, col_pdf, col_new = st.columns(3)
    now = datetime.now()
    with col_md:
        st.download_button(
            "📥 MARKDOWN",
            export_markdown(upload.last_result, now),
            file_name=export_filename("md", now),
            mime="text/markdown",
            use_container_width=True,
        )
    with col_pdf:
        try:
            st.download_button(
                "📄 PDF REPORT",
                export_pdf(upload.last_result, now),
                file_name=export_filename("pdf", now),
                mime="application/pdf",
                use_container_width=True,
            )
        except ExportTooLarge as e:
            st.caption(str(e))
    with col_new:
        if st.button("🔄 NEW ANALYSIS", use_container_width=True):
            start_new_analysis()
            st.rerun()
    st.stop()


# ══════════════════════════════════════════════════════════════════════════════
#  ERROR
# ══════════════════════════════════════════════════════════════════════════════
if st.session_state.stage == "error":
    st.markdown(
        f'<div class="error-box">⚠️ {escape(upload.last_error or "Something went wrong.")}</div>',
        unsafe_allow_html=True,
    )
    st.markdown("<br>", unsafe_allow_html=True)
    col_retry, col_new = st.columns(2)
    with col_retry:
        if st.button("🔁 TRY AGAIN", use_container_width=True, type="primary"):
            if upload.files:
                run_analysis()
            else:
                start_new_analysis()
                st.rerun()
    with col_new:
        if st.button("🔄 START OVER", use_container_width=True):
            start_new_analysis()
            st.rerun()
    st.stop()


# ══════════════════════════════════════════════════════════════════════════════
#  UPLOAD
# ══════════════════════════════════════════════════════════════════════════════
picked = st.file_uploader(
    "DROP APPLIANCE PHOTOS HERE (UP TO 5, 10MB EACH)",
    accept_multiple_files=True,
    key=f"uploader_{st.session_state.uploader_key}",
)
if picked:
    notify(upload.add_files([SelectedFile.from_upload(f) for f in picked]))
    # Fresh uploader so the same files aren't re-added on the next rerun
    st.session_state.uploader_key += 1
    st.rerun()

st.markdown(f'<div class="file-count">{escape(upload.file_count_text())}</div>', unsafe_allow_html=True)

if upload.files:
    cols = st.columns(min(len(upload.files), 5))
    for i, (f, preview) in enumerate(zip(upload.files, upload.previews)):
        with cols[i]:
            st.image(preview, use_container_width=True)
            st.markdown(
                f'<div class="file-info">{escape(f.name)} ({format_file_size(f.size)})</div>',
                unsafe_allow_html=True,
            )
            if st.button("✖ Remove", key=f"remove_{i}", use_container_width=True):
                upload.remove_file(i)
                st.rerun()

    upload.question = st.text_area(
        "ANYTHING SPECIFIC YOU WANT TO KNOW? (OPTIONAL)",
        value=upload.question,
        placeholder="e.g. Is it worth repairing the ice maker on this fridge?",
        height=90,
    )

    # ── Payment step ──────────────────────────────────────────────────────────
    payment_method = ""
    if REQUIRE_PAYMENT and not upload.payment_intent_id:
        st.markdown(f"### 💳 Pay ${ANALYSIS_PRICE:.2f} & Analyze")
        if st.session_state.stage == "payment" and upload.last_error:
            st.error(upload.last_error)
        payment_method = st.text_input(
            "CARD PAYMENT METHOD",
            placeholder="pm_... (from Stripe)",
            help="A Stripe PaymentMethod ID. In test mode use pm_card_visa.",
        )

    label = (
        f"🔍 PAY ${ANALYSIS_PRICE:.2f} & ANALYZE"
        if REQUIRE_PAYMENT and not upload.payment_intent_id
        else "🔍 ANALYZE"
    )
    if st.button(label, use_container_width=True, type="primary", disabled=upload.in_flight):
        run_analysis(payment_method.strip())
else:
    st.info("Add at least one photo of your appliance to get started.")


st.caption("NO PHOTOS ARE STORED  ·  AI ESTIMATES, NOT GUARANTEES  ·  PART NUMBERS SHOULD BE VERIFIED")
