from types import SimpleNamespace

import pytest
import stripe

from errors import PaymentRequired
from payment_service import PaymentIntentFailed, StripePayments, verify_intent
from tests.conftest import FakePayments


def test_create_intent_charges_configured_price(make_config, monkeypatch):
    sent = {}

    def fake_create(**kwargs):
        sent.update(kwargs)
        return SimpleNamespace(id="pi_1", client_secret="pi_1_secret_xyz")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)
    payments = StripePayments(make_config(stripe_secret_key="sk_test_1"))

    assert payments.create_intent() == {"clientSecret": "pi_1_secret_xyz", "amount": 299}
    assert sent["amount"] == 299
    assert sent["currency"] == "usd"
    assert sent["description"] == "Appliance Age Analysis"
    assert sent["api_key"] == "sk_test_1"


def test_create_intent_stripe_error(make_config, monkeypatch):
    def fake_create(**kwargs):
        raise stripe.StripeError("card network down")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)
    payments = StripePayments(make_config(stripe_secret_key="sk_test_1"))

    with pytest.raises(PaymentIntentFailed) as exc:
        payments.create_intent()
    assert exc.value.status_code == 500
    assert "sk_test_1" not in str(exc.value.to_body())


def test_intent_status_reads_stripe(make_config, monkeypatch):
    monkeypatch.setattr(
        stripe.PaymentIntent, "retrieve",
        lambda intent_id, **kwargs: SimpleNamespace(id=intent_id, status="succeeded"),
    )
    payments = StripePayments(make_config(stripe_secret_key="sk_test_1"))
    assert payments.intent_status("pi_9") == "succeeded"


def test_verify_accepts_succeeded_intent():
    payments = FakePayments(statuses={"pi_ok": "succeeded"})
    verify_intent(payments, "pi_ok")
    assert payments.lookups == ["pi_ok"]


def test_verify_rechecks_every_time():
    payments = FakePayments(statuses={"pi_ok": "succeeded"})
    verify_intent(payments, "pi_ok")
    verify_intent(payments, "pi_ok")
    assert payments.lookups == ["pi_ok", "pi_ok"]


@pytest.mark.parametrize("reference,payments,message", [
    (None, FakePayments(), "Payment required. Please complete payment first."),
    ("", FakePayments(), "Payment required. Please complete payment first."),
    ("pi_x", FakePayments(statuses={"pi_x": "processing"}), "Payment not completed. Please complete payment first."),
    ("pi_x", FakePayments(error=stripe.StripeError("boom")), "Payment verification failed. Please try payment again."),
])
def test_verify_rejects(reference, payments, message):
    with pytest.raises(PaymentRequired) as exc:
        verify_intent(payments, reference)
    assert exc.value.to_body() == {"error": message, "requiresPayment": True}


def test_verify_without_secret_key_is_payment_required(make_config):
    with pytest.raises(PaymentRequired):
        verify_intent(StripePayments(make_config()), "pi_x")
