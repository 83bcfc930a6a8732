from types import SimpleNamespace

import pytest
import requests
import stripe

import analysis_client
from analysis_client import AnalysisClient, SelectedFile, UploadSession, format_file_size
from tests.conftest import jpeg_bytes


def selected(name="washer.jpg", data=None, content_type="image/jpeg"):
    return SelectedFile(name=name, content_type=content_type, data=data if data is not None else jpeg_bytes())


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class RecordingHttp:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        result = self.responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def close(self):
        pass


@pytest.fixture
def client():
    c = AnalysisClient("http://gateway.test/")
    c.http = RecordingHttp()
    return c


# ── File sizes ────────────────────────────────────────────────────────────────
@pytest.mark.parametrize("num_bytes,text", [
    (0, "0 Bytes"),
    (512, "512 Bytes"),
    (1024, "1 KB"),
    (1536, "1.5 KB"),
    (2 * 1024 * 1024, "2 MB"),
])
def test_format_file_size(num_bytes, text):
    assert format_file_size(num_bytes) == text


# ── Upload session ────────────────────────────────────────────────────────────
def test_sixth_photo_is_refused_with_warning(client):
    session = UploadSession()
    notices = session.add_files([selected(f"p{i}.jpg") for i in range(6)])

    assert len(session.files) == 5
    assert len(session.previews) == 5
    warnings = [n for n in notices if n.level == "warning"]
    assert warnings[0].message == "You can only upload 5 images total. 5 slots remaining."
    assert client.http.calls == []


def test_adding_past_the_cap_over_two_picks():
    session = UploadSession()
    session.add_files([selected(f"p{i}.jpg") for i in range(4)])
    notices = session.add_files([selected("p4.jpg"), selected("p5.jpg")])
    assert [f.name for f in session.files][-1] == "p4.jpg"
    assert "1 slots remaining" in notices[0].message


def test_invalid_type_and_oversize_are_rejected():
    session = UploadSession(max_file_bytes=1000)
    notices = session.add_files([
        selected("manual.pdf", data=b"%PDF", content_type="application/pdf"),
        selected("huge.jpg", data=b"\xff" * 1001),
        selected("ok.jpg"),
    ])
    messages = [n.message for n in notices]
    assert "manual.pdf is not a valid image file" in messages
    assert any(m.startswith("huge.jpg is too large") for m in messages)
    assert [f.name for f in session.files] == ["ok.jpg"]


def test_undecodable_photo_is_dropped_from_list():
    session = UploadSession()
    notices = session.add_files([selected("broken.jpg", data=b"not really a jpeg"), selected("ok.jpg")])
    assert [f.name for f in session.files] == ["ok.jpg"]
    assert len(session.previews) == 1
    assert "Could not read broken.jpg. It was removed." in [n.message for n in notices]


def test_remove_file_keeps_previews_in_step():
    session = UploadSession()
    session.add_files([selected("a.jpg"), selected("b.jpg"), selected("c.jpg")])
    session.remove_file(1)
    assert [f.name for f in session.files] == ["a.jpg", "c.jpg"]
    assert len(session.previews) == 2
    session.remove_file(0)
    session.remove_file(0)
    assert session.files == [] and session.previews == []


def test_file_count_and_loading_text():
    session = UploadSession()
    assert session.file_count_text() == "No photos selected"
    session.add_files([selected()])
    assert session.file_count_text() == "1 appliance selected"
    assert session.loading_text() == (
        "Analyzing your appliance...",
        "Our AI is examining 1 photo to provide detailed insights",
    )
    session.add_files([selected("b.jpg"), selected("c.jpg")])
    assert session.file_count_text() == "3 appliances selected (2 slots remaining)"
    assert session.loading_text()[1] == "Our AI is examining 3 photos to provide detailed insights"


def test_reset_clears_everything():
    session = UploadSession()
    session.add_files([selected()])
    session.question = "why?"
    session.payment_intent_id = "pi_1"
    session.last_result = "report"
    session.reset()
    assert session.files == [] and session.previews == []
    assert session.question == "" and session.payment_intent_id is None
    assert session.last_result is None


# ── Gateway calls ─────────────────────────────────────────────────────────────
def test_analyze_sends_question_in_query_string(client):
    client.http = RecordingHttp(FakeResponse(200, {"success": True, "analysis": "report", "fileCount": 1}))
    session = UploadSession()
    session.add_files([selected()])
    session.question = "  Worth fixing?  "

    result = client.submit_for_analysis(session)

    assert result == {"analysis": "report", "fileCount": 1}
    url, kwargs = client.http.calls[0]
    assert url == "http://gateway.test/analyze"
    assert kwargs["params"] == {"custom_question": "Worth fixing?"}
    assert "custom_question" not in kwargs["data"]
    assert kwargs["data"]["total_files"] == "1"
    assert kwargs["files"][0][0] == "photos"
    assert session.in_flight is False


def test_submit_without_photos_makes_no_call(client):
    result = client.submit_for_analysis(UploadSession())
    assert result == {"error": "Please select at least one appliance photo first."}
    assert client.http.calls == []


def test_submit_while_in_flight_is_refused(client):
    session = UploadSession()
    session.add_files([selected()])
    session.in_flight = True
    assert "error" in client.submit_for_analysis(session)
    assert client.http.calls == []


def test_gateway_error_message_includes_details(client):
    client.http = RecordingHttp(FakeResponse(500, {
        "error": "Failed to analyze appliance",
        "details": "Model refused or gave insufficient response",
    }))
    session = UploadSession()
    session.add_files([selected()])
    result = client.submit_for_analysis(session)
    assert result == {"error": "Failed to analyze appliance: Model refused or gave insufficient response"}


def test_payment_required_clears_reference(client):
    client.http = RecordingHttp(FakeResponse(402, {
        "error": "Payment not completed. Please complete payment first.",
        "requiresPayment": True,
    }))
    session = UploadSession()
    session.add_files([selected()])
    session.payment_intent_id = "pi_stale"

    result = client.submit_for_analysis(session)

    assert result["requires_payment"] is True
    assert client.http.calls[0][1]["data"]["payment_intent_id"] == "pi_stale"
    assert session.payment_intent_id is None


def test_network_failure_is_reported(client):
    client.http = RecordingHttp(requests.exceptions.ConnectionError("refused"))
    session = UploadSession()
    session.add_files([selected()])
    result = client.submit_for_analysis(session)
    assert result == {"error": "Analysis service unavailable. Check your connection and try again."}
    assert session.in_flight is False


def test_non_json_response(client):
    client.http = RecordingHttp(FakeResponse(502, ValueError("not json")))
    session = UploadSession()
    session.add_files([selected()])
    assert client.submit_for_analysis(session) == {"error": "Unexpected response from server (502)."}


def test_paid_flow_creates_and_confirms_intent(client, monkeypatch):
    client.payment_enabled = True
    client.publishable_key = "pk_test_1"
    client.http = RecordingHttp(
        FakeResponse(200, {"clientSecret": "pi_7_secret_abc", "amount": 299}),
        FakeResponse(200, {"success": True, "analysis": "report", "fileCount": 1}),
    )
    confirmed = []

    def fake_confirm(client_secret, payment_method, publishable_key):
        confirmed.append((client_secret, payment_method, publishable_key))
        return {"payment_intent_id": "pi_7"}

    monkeypatch.setattr(analysis_client, "confirm_card_payment", fake_confirm)
    session = UploadSession()
    session.add_files([selected()])

    result = client.submit_for_analysis(session, payment_method="pm_card_visa")

    assert result["analysis"] == "report"
    assert confirmed == [("pi_7_secret_abc", "pm_card_visa", "pk_test_1")]
    assert client.http.calls[0][0] == "http://gateway.test/create-payment-intent"
    assert client.http.calls[1][1]["data"]["payment_intent_id"] == "pi_7"


def test_paid_flow_needs_payment_method(client):
    client.payment_enabled = True
    session = UploadSession()
    session.add_files([selected()])
    result = client.submit_for_analysis(session)
    assert result["requires_payment"] is True
    assert client.http.calls == []


@pytest.mark.parametrize("body", [["not", "an", "object"], None, "ok"])
def test_non_object_json_response(client, body):
    client.http = RecordingHttp(FakeResponse(200, body))
    session = UploadSession()
    session.add_files([selected()])
    assert client.submit_for_analysis(session) == {"error": "Unexpected response from server (200)."}
    assert session.in_flight is False


def test_non_object_payment_intent_response(client):
    client.http = RecordingHttp(FakeResponse(200, None))
    assert client.create_payment_intent() == {"error": "Payment service returned an invalid response."}


# ── Cancel ────────────────────────────────────────────────────────────────────
def test_cancel_during_request_reports_cancelled_and_renews_session(client):
    class CancelledMidCall(RecordingHttp):
        def post(self, url, **kwargs):
            self.calls.append((url, kwargs))
            client.cancel()
            raise requests.exceptions.ConnectionError("connection closed")

    stale = CancelledMidCall()
    client.http = stale
    session = UploadSession()
    session.add_files([selected()])

    result = client.submit_for_analysis(session)

    assert result == {"error": "Analysis cancelled."}
    assert isinstance(client.http, requests.Session)
    assert client.http is not stale
    assert session.in_flight is False


def test_failure_after_earlier_cancel_is_not_reported_as_cancelled(client):
    client.cancel()
    client.http = RecordingHttp(requests.exceptions.ConnectionError("refused"))
    session = UploadSession()
    session.add_files([selected()])
    assert client.submit_for_analysis(session) == {
        "error": "Analysis service unavailable. Check your connection and try again."
    }


# ── Card confirmation ─────────────────────────────────────────────────────────
def test_card_decline_shows_processor_message(monkeypatch):
    def declined(intent_id, **kwargs):
        raise stripe.CardError("Your card has insufficient funds.", None, "card_declined")

    monkeypatch.setattr(stripe.PaymentIntent, "confirm", declined)
    result = analysis_client.confirm_card_payment("pi_1_secret_abc", "pm_card_visa", "pk_test_1")
    assert result == {"error": "Your card has insufficient funds."}


def test_processor_failure_shows_processor_message(monkeypatch):
    def broken(intent_id, **kwargs):
        raise stripe.StripeError("Rate limit hit, slow down.")

    monkeypatch.setattr(stripe.PaymentIntent, "confirm", broken)
    result = analysis_client.confirm_card_payment("pi_1_secret_abc", "pm_card_visa", "pk_test_1")
    assert result == {"error": "Rate limit hit, slow down."}


def test_unfinished_confirmation_names_the_status(monkeypatch):
    monkeypatch.setattr(
        stripe.PaymentIntent, "confirm",
        lambda intent_id, **kwargs: SimpleNamespace(id=intent_id, status="requires_action"),
    )
    result = analysis_client.confirm_card_payment("pi_1_secret_abc", "pm_card_visa", "pk_test_1")
    assert result == {"error": "Payment not completed (status: requires_action). Please try again."}


def test_confirmation_uses_publishable_key_and_intent_id(monkeypatch):
    seen = []

    def confirm(intent_id, **kwargs):
        seen.append((intent_id, kwargs))
        return SimpleNamespace(id=intent_id, status="succeeded")

    monkeypatch.setattr(stripe.PaymentIntent, "confirm", confirm)
    result = analysis_client.confirm_card_payment("pi_1_secret_abc", "pm_card_visa", "pk_test_1")

    assert result == {"payment_intent_id": "pi_1"}
    assert seen == [("pi_1", {
        "payment_method": "pm_card_visa",
        "client_secret": "pi_1_secret_abc",
        "api_key": "pk_test_1",
    })]
