"""
analysis_client.py — Upload session + gateway calls for the front end
=====================================================================
UploadSession owns everything the page used to keep in loose globals:
the selected photos, their thumbnails, the question, the payment reference
and the in-flight flag. AnalysisClient talks to the gateway.

Service calls return plain dicts: {"analysis": ...} on success or
{"error": "..."} on failure, never raising into the UI.
"""

import io
import logging
from typing import List, Optional

import requests
import stripe
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel

log = logging.getLogger("client")

MAX_FILES = 5
MAX_FILE_BYTES = 10 * 1024 * 1024
THUMBNAIL_SIZE = (320, 320)


def format_file_size(num_bytes: int) -> str:
    if num_bytes <= 0:
        return "0 Bytes"
    sizes = ["Bytes", "KB", "MB", "GB"]
    i = 0
    value = float(num_bytes)
    while value >= 1024 and i < len(sizes) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {sizes[i]}"


class SelectedFile(BaseModel):
    name:         str
    content_type: str
    data:         bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_upload(cls, uploaded) -> "SelectedFile":
        """Accepts a Streamlit UploadedFile (or anything with name/type/getvalue)."""
        return cls(
            name=getattr(uploaded, "name", "photo"),
            content_type=getattr(uploaded, "type", "") or "",
            data=uploaded.getvalue(),
        )


class Notice(BaseModel):
    level:   str      # "error" | "warning" | "success" | "info"
    message: str


class UploadSession:
    def __init__(self, max_files: int = MAX_FILES, max_file_bytes: int = MAX_FILE_BYTES):
        self.max_files = max_files
        self.max_file_bytes = max_file_bytes
        self.files: List[SelectedFile] = []
        self.previews: List[bytes] = []
        self.question = ""
        self.payment_intent_id: Optional[str] = None
        self.in_flight = False
        self.last_result: Optional[str] = None
        self.last_error: Optional[str] = None

    # ── Files ─────────────────────────────────────────────────────────────────
    def add_files(self, candidates: List[SelectedFile]) -> List[Notice]:
        notices: List[Notice] = []
        valid = []
        for f in candidates:
            if not f.content_type.startswith("image/"):
                notices.append(Notice(level="error", message=f"{f.name} is not a valid image file"))
                continue
            if f.size > self.max_file_bytes:
                notices.append(Notice(
                    level="error",
                    message=f"{f.name} is too large (max {format_file_size(self.max_file_bytes)})",
                ))
                continue
            valid.append(f)

        remaining = self.max_files - len(self.files)
        if len(valid) > remaining:
            notices.append(Notice(
                level="warning",
                message=f"You can only upload {self.max_files} images total. {remaining} slots remaining.",
            ))
            valid = valid[:max(remaining, 0)]

        self.files.extend(valid)
        if valid:
            notices.extend(self.regenerate_previews())
        return notices

    def remove_file(self, index: int) -> None:
        if 0 <= index < len(self.files):
            self.files.pop(index)
        if not self.files:
            self.previews = []
        else:
            self.regenerate_previews()

    def regenerate_previews(self) -> List[Notice]:
        """Rebuild every thumbnail. A photo that can't be decoded is dropped."""
        notices: List[Notice] = []
        kept, previews = [], []
        for f in self.files:
            try:
                previews.append(_thumbnail(f))
                kept.append(f)
            except (UnidentifiedImageError, OSError, ValueError) as e:
                log.warning(f"Preview failed for {f.name}: {e}")
                notices.append(Notice(level="error", message=f"Could not read {f.name}. It was removed."))
        self.files, self.previews = kept, previews
        return notices

    def file_count_text(self) -> str:
        count = len(self.files)
        if count == 0:
            return "No photos selected"
        if count == 1:
            return "1 appliance selected"
        return f"{count} appliances selected ({self.max_files - count} slots remaining)"

    def loading_text(self):
        n = len(self.files)
        noun = "appliance" if n == 1 else "appliances"
        photos = f"{n} photo" + ("s" if n > 1 else "")
        return (
            f"Analyzing your {noun}...",
            f"Our AI is examining {photos} to provide detailed insights",
        )

    def reset(self) -> None:
        self.files, self.previews = [], []
        self.question = ""
        self.payment_intent_id = None
        self.in_flight = False
        self.last_result = None
        self.last_error = None


def _thumbnail(f: SelectedFile) -> bytes:
    with Image.open(io.BytesIO(f.data)) as img:
        img.thumbnail(THUMBNAIL_SIZE)
        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")
        buf = io.BytesIO()
        img.save(buf, format="JPEG", quality=80)
    return buf.getvalue()


# ── Payments ──────────────────────────────────────────────────────────────────
def confirm_card_payment(client_secret: str, payment_method: str, publishable_key: str) -> dict:
    """
    Confirm the intent the gateway created, with the publishable key + client secret
    (the same call Stripe.js makes). Returns {"payment_intent_id": ...} or {"error": ...}
    with Stripe's own message.
    """
    intent_id = client_secret.split("_secret_")[0]
    try:
        intent = stripe.PaymentIntent.confirm(
            intent_id,
            payment_method=payment_method,
            client_secret=client_secret,
            api_key=publishable_key,
        )
    except stripe.CardError as e:
        return {"error": e.user_message or "Your card was declined."}
    except stripe.StripeError as e:
        log.error(f"Payment confirmation failed: {e.__class__.__name__}")
        return {"error": e.user_message or "Payment failed. Please try again."}

    if intent.status != "succeeded":
        return {"error": f"Payment not completed (status: {intent.status}). Please try again."}
    return {"payment_intent_id": intent.id}


# ── Gateway client ────────────────────────────────────────────────────────────
class AnalysisClient:
    def __init__(self, base_url: str, timeout: float = 120,
                 payment_enabled: bool = False, publishable_key: str = ""):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.payment_enabled = payment_enabled
        self.publishable_key = publishable_key
        self.http = requests.Session()
        self._cancelled = False

    def cancel(self) -> None:
        """Abort the in-flight call by closing the underlying connection pool."""
        self._cancelled = True
        self.http.close()

    def create_payment_intent(self) -> dict:
        try:
            resp = self.http.post(f"{self.base_url}/create-payment-intent", timeout=15)
            body = resp.json()
        except requests.exceptions.RequestException:
            return {"error": "Payment service unavailable. Try again in a moment."}
        except ValueError:
            return {"error": "Payment service returned an invalid response."}
        if not isinstance(body, dict):
            return {"error": "Payment service returned an invalid response."}
        if not resp.ok or "clientSecret" not in body:
            return {"error": body.get("details") or body.get("error") or "Failed to create payment intent"}
        return body

    def analyze(self, session: UploadSession) -> dict:
        files = [("photos", (f.name, f.data, f.content_type)) for f in session.files]
        data = {"total_files": str(len(session.files))}
        if session.payment_intent_id:
            data["payment_intent_id"] = session.payment_intent_id

        # The question travels in the query string, not the multipart body
        params = {}
        question = session.question.strip()
        if question:
            params["custom_question"] = question

        self._cancelled = False
        try:
            resp = self.http.post(
                f"{self.base_url}/analyze",
                params=params, files=files, data=data, timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            return {"error": "The analysis took too long. Try again in a moment."}
        except requests.exceptions.RequestException:
            if self._cancelled:
                self.http = requests.Session()
                return {"error": "Analysis cancelled."}
            return {"error": "Analysis service unavailable. Check your connection and try again."}

        try:
            body = resp.json()
        except ValueError:
            return {"error": f"Unexpected response from server ({resp.status_code})."}
        if not isinstance(body, dict):
            return {"error": f"Unexpected response from server ({resp.status_code})."}

        if resp.ok and body.get("success"):
            return {"analysis": body["analysis"], "fileCount": body.get("fileCount", len(files))}

        if body.get("requiresPayment"):
            return {"error": body.get("error", "Payment required."), "requires_payment": True}

        message = body.get("error") or "Failed to analyze appliances"
        if body.get("details"):
            message = f"{message}: {body['details']}"
        return {"error": message}

    def submit_for_analysis(self, session: UploadSession, payment_method: str = "") -> dict:
        if not session.files:
            return {"error": "Please select at least one appliance photo first."}
        if session.in_flight:
            return {"error": "An analysis is already running."}

        session.in_flight = True
        try:
            if self.payment_enabled and not session.payment_intent_id:
                if not payment_method:
                    return {"error": "Payment required. Please complete payment first.", "requires_payment": True}
                intent = self.create_payment_intent()
                if "error" in intent:
                    return intent
                confirmed = confirm_card_payment(intent["clientSecret"], payment_method, self.publishable_key)
                if "error" in confirmed:
                    return confirmed
                session.payment_intent_id = confirmed["payment_intent_id"]

            result = self.analyze(session)
            if result.get("requires_payment"):
                session.payment_intent_id = None
            return result
        finally:
            session.in_flight = False
