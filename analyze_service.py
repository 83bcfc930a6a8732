"""
analyze_service.py — The Appliance Inspector Gateway
====================================================
FastAPI service behind the upload page.

Endpoints:
  OPTIONS /analyze                — CORS preflight (empty 200)
  POST    /analyze                — photos in, formatted-for-display analysis out
  POST    /create-payment-intent  — $2.99 Stripe intent for one analysis
  GET     /health                 — liveness check

Request lifecycle for /analyze:
  ReceivingRequest → ValidatingInput → PaymentCheck → BuildingPrompt
  → CallingModel → ValidatingResponse → Responding   (Failed from any step)

Validation and payment failures return before the model is ever called.

Run locally:  python analyze_service.py   (PORT, default 3000)
"""

import os
import logging
import secrets
from datetime import datetime, timezone
from enum import Enum

from fastapi import FastAPI, Request, Depends, Query
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import AnalysisConfig, PROMOTIONAL_LINKS, get_config
from errors import BadRequest, GatewayError, InternalError, MethodNotAllowed
from payment_service import StripePayments, verify_intent
from prompt_builder import PROMPT_VERSION, SERVICES, build_prompt
from schemas import AnalyzeResponse, ErrorResponse, HealthResponse, PaymentIntentResponse
from uploads import ImageUpload, UploadBatch, check_declared_length, staged_uploads, validate_batch
from vision_service import build_vision_model, run_analysis, validate_analysis

# ── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(level=logging.INFO, format="%(asctime)s [GATEWAY] %(levelname)s %(message)s")
log = logging.getLogger("gateway")

app = FastAPI(title="Appliance Inspector Gateway", docs_url=None, redoc_url=None)

CORS_HEADERS = {
    "Access-Control-Allow-Origin":  "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}

PHOTO_FIELD   = "photos"
PAYMENT_FIELD = "payment_intent_id"

PROMOTIONAL_BLOCK = f"""

---

## {SERVICES}

### Need a Repair Estimate?
**Get a professional repair estimate at:** [{PROMOTIONAL_LINKS[0][0]}]({PROMOTIONAL_LINKS[0][1]})
- Professional appliance repair quotes
- Licensed and insured technicians
- Quick and reliable service

### Need Appliance Removal?
**Professional appliance pickup and disposal:** [{PROMOTIONAL_LINKS[1][0]}]({PROMOTIONAL_LINKS[1][1]})
- Free local appliance pickup
- Environmentally responsible disposal
- Same-day service available

---
*Analysis provided by AI-powered appliance assessment technology*"""


class AnalysisState(str, Enum):
    RECEIVING  = "ReceivingRequest"
    VALIDATING = "ValidatingInput"
    PAYMENT    = "PaymentCheck"
    PROMPT     = "BuildingPrompt"
    CALLING    = "CallingModel"
    CHECKING   = "ValidatingResponse"
    RESPONDING = "Responding"
    FAILED     = "Failed"


# ── Dependencies ──────────────────────────────────────────────────────────────
def get_model_factory():
    """Returns a callable cfg -> model. Overridden in tests with a fake."""
    return build_vision_model


def get_payments(cfg: AnalysisConfig = Depends(get_config)):
    return StripePayments(cfg)


# ── Error rendering ───────────────────────────────────────────────────────────
@app.middleware("http")
async def add_cors_headers(request: Request, call_next):
    response = await call_next(request)
    for k, v in CORS_HEADERS.items():
        response.headers.setdefault(k, v)
    return response


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 405:
        return JSONResponse(status_code=405, content=MethodNotAllowed().to_body())
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid request parameters"})


# ── Request parsing ───────────────────────────────────────────────────────────
async def read_batch(request: Request, custom_question: str, cfg: AnalysisConfig) -> UploadBatch:
    """Pull photos, question and payment reference out of the multipart body."""
    content_type = request.headers.get("content-type", "")
    length_header = request.headers.get("content-length", "")
    content_length = int(length_header) if length_header.isdigit() else None
    if content_length == 0 or (content_length is None and not content_type):
        raise BadRequest("No data received")
    if "multipart/form-data" not in content_type or "boundary=" not in content_type:
        raise BadRequest("Invalid content type")
    check_declared_length(content_length, cfg)

    try:
        # One spare slot so an over-limit batch is reported as such, not as a parse error
        form = await request.form(max_files=cfg.max_images + 1)
    except Exception as e:
        log.warning(f"Unparseable multipart payload: {e}")
        raise BadRequest("Invalid multipart payload")
    if not form:
        raise BadRequest("No data received")

    images = []
    for part in form.getlist(PHOTO_FIELD):
        if not isinstance(part, UploadFile):
            raise BadRequest(f"Field '{PHOTO_FIELD}' must contain image files")
        data = await part.read()
        images.append(ImageUpload(
            filename=part.filename or "uploaded-image",
            content_type=part.content_type or "",
            data=data,
        ))

    # Query parameter first; multipart text field kept as a fallback
    question = custom_question or form.get("custom_question") or ""
    if not isinstance(question, str):
        question = ""

    payment_reference = form.get(PAYMENT_FIELD)
    if not isinstance(payment_reference, str):
        payment_reference = None

    declared = form.get("total_files")
    if isinstance(declared, str) and declared.isdigit() and int(declared) != len(images):
        log.warning(f"total_files={declared} but {len(images)} photo part(s) received")

    return UploadBatch(
        images=images,
        question=question.strip(),
        payment_reference=(payment_reference or "").strip() or None,
    )


# ── Routes ────────────────────────────────────────────────────────────────────
@app.get("/health", response_model=HealthResponse)
async def health():
    return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.options("/analyze")
@app.options("/create-payment-intent")
async def preflight():
    return Response(status_code=200, headers=CORS_HEADERS)


@app.post("/create-payment-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(payments=Depends(get_payments)):
    return payments.create_intent()


@app.post(
    "/analyze",
    response_model=AnalyzeResponse,
    responses={code: {"model": ErrorResponse} for code in (400, 402, 405, 500)},
)
async def analyze(
    request: Request,
    custom_question: str = Query(""),
    cfg: AnalysisConfig = Depends(get_config),
    model_factory=Depends(get_model_factory),
    payments=Depends(get_payments),
):
    rid = secrets.token_hex(4)
    state = AnalysisState.RECEIVING

    def enter(new_state: AnalysisState):
        nonlocal state
        state = new_state
        log.info(f"[{rid}] {state.value}")

    enter(AnalysisState.RECEIVING)
    try:
        enter(AnalysisState.VALIDATING)
        batch = await read_batch(request, custom_question, cfg)
        validate_batch(batch, cfg)
        log.info(
            f"[{rid}] {len(batch.images)} photo(s), {batch.total_bytes} bytes, "
            f"custom question: {'yes' if batch.has_question else 'no'}"
        )

        with staged_uploads(batch, cfg.upload_staging_dir):
            if cfg.payment_enforced:
                enter(AnalysisState.PAYMENT)
                verify_intent(payments, batch.payment_reference)
            else:
                log.info(f"[{rid}] Payment verification skipped (require_payment={cfg.require_payment})")

            enter(AnalysisState.PROMPT)
            if cfg.prompt_template_version != PROMPT_VERSION:
                log.error(
                    f"[{rid}] Prompt version mismatch: config={cfg.prompt_template_version} "
                    f"builder={PROMPT_VERSION}"
                )
                raise InternalError()
            prompt = build_prompt(len(batch.images), batch.question)

            enter(AnalysisState.CALLING)
            model = model_factory(cfg)
            raw = await run_analysis(model, prompt, batch.images, cfg)

            enter(AnalysisState.CHECKING)
            analysis = validate_analysis(raw, cfg) + PROMOTIONAL_BLOCK

        enter(AnalysisState.RESPONDING)
        return {
            "success": True,
            "analysis": analysis,
            "fileCount": len(batch.images),
            "hasCustomQuestion": batch.has_question,
        }

    except GatewayError as e:
        log.warning(f"[{rid}] {AnalysisState.FAILED.value} during {state.value}: {e.status_code} {e.message}")
        raise
    except Exception:
        log.exception(f"[{rid}] {AnalysisState.FAILED.value} during {state.value}: unexpected error")
        raise InternalError()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "3000"))
    log.info(f"Appliance Inspector gateway running on http://localhost:{port}")
    uvicorn.run(app, host="0.0.0.0", port=port)
