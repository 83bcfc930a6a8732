"""
appliance_styles.py
===================
Style sheet for the Appliance Inspector page, plus the header block.

Usage (app.py, right after set_page_config):
    from appliance_styles import INSPECTOR_CSS, HEADER_HTML
    st.markdown(INSPECTOR_CSS, unsafe_allow_html=True)
    st.markdown(HEADER_HTML, unsafe_allow_html=True)

The card classes match what report_formatter.py emits.
"""

INSPECTOR_CSS = """
<style>
/* ═══════════════════════════════════════════════════════
   FONTS & ROOT VARIABLES
═══════════════════════════════════════════════════════ */
@import url('https://fonts.googleapis.com/css2?family=Inter:wght@400;500;600;700&display=swap');

:root {
    --brand:        #667eea;
    --brand-deep:   #4c51bf;
    --brand-soft:   #eef0fd;
    --ok:           #2ed573;
    --warn:         #ffa502;
    --danger:       #ff4757;
    --ink:          #2d3748;
    --ink-dim:      #718096;
    --card:         #ffffff;
    --line:         #e2e8f0;
}

.stApp {
    background: linear-gradient(135deg, #f5f7ff 0%, #eef2f7 100%) !important;
    font-family: 'Inter', sans-serif !important;
}

.block-container {
    max-width: 1100px !important;
    padding-top: 1.5rem !important;
}

/* ═══════════════════════════════════════════════════════
   HEADER
═══════════════════════════════════════════════════════ */
.inspector-header {
    text-align: center;
    padding: 28px 0 18px;
}

.inspector-title {
    font-size: clamp(2rem, 5vw, 3.2rem);
    font-weight: 700;
    color: var(--ink);
    margin: 0;
}

.inspector-subtitle {
    color: var(--ink-dim);
    font-size: 1.05rem;
    margin-top: 6px;
}

/* ═══════════════════════════════════════════════════════
   UPLOAD PREVIEWS
═══════════════════════════════════════════════════════ */
.file-info {
    color: var(--ink-dim);
    font-size: 0.8rem;
    text-align: center;
    word-break: break-all;
}

.file-count {
    color: var(--brand-deep);
    font-weight: 600;
    margin: 8px 0 4px;
}

/* ═══════════════════════════════════════════════════════
   ANALYSIS REPORT
═══════════════════════════════════════════════════════ */
.analysis-report {
    background: var(--card);
    border-radius: 12px;
    padding: 28px 32px;
    box-shadow: 0 4px 20px rgba(0,0,0,0.06);
    color: var(--ink);
    line-height: 1.65;
}

.analysis-report h2.section-heading {
    font-size: 1.25rem;
    font-weight: 700;
    border-bottom: 2px solid var(--brand-soft);
    padding-bottom: 6px;
    margin: 26px 0 12px;
}

.analysis-report h3.sub-heading {
    font-size: 1.05rem;
    color: var(--brand-deep);
    margin: 18px 0 8px;
}

.analysis-list { padding-left: 1.2rem; }
.analysis-list li { margin-bottom: 6px; }

.price {
    background: #fff4e0;
    color: #b35c00;
    font-weight: 700;
    padding: 1px 6px;
    border-radius: 4px;
}

/* ═══════════════════════════════════════════════════════
   CARDS
═══════════════════════════════════════════════════════ */
.info-grid {
    display: grid;
    grid-template-columns: repeat(auto-fit, minmax(220px, 1fr));
    gap: 12px;
    margin: 8px 0 16px;
}

.info-card {
    background: var(--brand-soft);
    border-left: 4px solid var(--brand);
    border-radius: 0 8px 8px 0;
    padding: 12px 16px;
}

.warranty-card { border-left-color: var(--ok); background: #ecfbf2; }
.age-card      { border-left-color: var(--brand); }

.info-label {
    font-size: 0.75rem;
    letter-spacing: 1px;
    text-transform: uppercase;
    color: var(--ink-dim);
    font-weight: 600;
}

.info-value { font-size: 1rem; margin-top: 4px; }

.problem-card {
    display: flex;
    gap: 14px;
    align-items: flex-start;
    background: #fff8f0;
    border: 1px solid #ffe3c4;
    border-radius: 8px;
    padding: 12px 16px;
    margin-bottom: 10px;
}

.problem-number {
    flex: 0 0 30px;
    height: 30px;
    border-radius: 50%;
    background: var(--warn);
    color: white;
    font-weight: 700;
    display: flex;
    align-items: center;
    justify-content: center;
}

.tutorial-link, .video-link, .shop-link {
    font-size: 0.85rem;
    font-weight: 600;
    color: var(--brand-deep) !important;
    text-decoration: none;
    margin-left: 6px;
}

.part-number {
    font-family: monospace;
    background: #edf2f7;
    padding: 1px 6px;
    border-radius: 4px;
}

.part-links { margin-top: 2px; }

/* ═══════════════════════════════════════════════════════
   PROFESSIONAL SERVICES & FOOTER
═══════════════════════════════════════════════════════ */
.business-section {
    background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
    color: white;
    border-radius: 12px;
    padding: 20px 24px;
    margin: 20px 0;
}

.business-section h2, .business-section h3, .business-section a {
    color: white !important;
    border: none !important;
}

.analysis-footer {
    text-align: center;
    color: var(--ink-dim);
    font-size: 0.85rem;
    margin-top: 18px;
}

hr.divider {
    border: none;
    border-top: 1px solid var(--line);
    margin: 20px 0;
}

/* ═══════════════════════════════════════════════════════
   ERROR STATE
═══════════════════════════════════════════════════════ */
.error-box {
    background: #fff5f5;
    border-left: 4px solid var(--danger);
    border-radius: 0 8px 8px 0;
    padding: 16px 20px;
    color: #9b2c2c;
}
</style>
"""

HEADER_HTML = """
<div class="inspector-header">
    <div class="inspector-title">🔍 Appliance Inspector</div>
    <div class="inspector-subtitle">Snap your appliance · get its age, warranty outlook and the parts that usually fail</div>
</div>
"""
