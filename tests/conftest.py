import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from analyze_service import app, get_model_factory, get_payments
from config import AnalysisConfig, get_config
from prompt_builder import AGE, IDENTIFICATION, PARTS, PROBLEMS, VIDEOS, WARRANTY

GOOD_REPLY = f"""## {IDENTIFICATION}
**Type:** Front-load washing machine
**Brand:** Whirlpool
**Model:** WFW9150WW

## {AGE}
**Estimated Age:** 8-12 years old
**Manufacturing Period:** 2012-2016
**Confidence Level:** Medium

## {WARRANTY}
**Typical Warranty:** 1 year parts and labor
**Current Status:** Likely out of warranty

## {PROBLEMS}
1. **Door gasket mold** - Musty smell and visible mildew around the seal
2. **Drain pump failure** - Water left in the drum after the cycle

## {PARTS}
- **Door Boot Seal**: OEM# W10290499 - **Part Cost: $45-$90**
  - 🛒 **Amazon:** https://www.amazon.com/s?k=W10290499
- **Drain Pump**: OEM# 280187 - **Part Cost: $35-$60**

## {VIDEOS}
- **Replace door seal** - YouTube: "whirlpool washer door boot seal replacement"

Visit http://sketchy.example/parts for deals.
"""


def jpeg_bytes(size=(16, 16), color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="JPEG")
    return buf.getvalue()


class FakeModel:
    name = "fake"

    def __init__(self, reply=GOOD_REPLY, on_call=None):
        self.reply = reply
        self.on_call = on_call
        self.calls = []

    async def generate(self, prompt, images, max_tokens, temperature):
        self.calls.append({
            "prompt": prompt,
            "images": images,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        if self.on_call:
            self.on_call()
        return self.reply


class FakePayments:
    def __init__(self, statuses=None, error=None):
        self.statuses = statuses or {}
        self.error = error
        self.lookups = []

    def intent_status(self, payment_intent_id):
        self.lookups.append(payment_intent_id)
        if self.error:
            raise self.error
        return self.statuses.get(payment_intent_id, "requires_payment_method")

    def create_intent(self):
        return {"clientSecret": "pi_test_secret_abc", "amount": 299}


@pytest.fixture
def make_config():
    def _make(**overrides):
        values = dict(app_env="test", require_payment=False, gemini_api_key="test-key")
        values.update(overrides)
        return AnalysisConfig(**values)
    return _make


@pytest.fixture
def gateway(make_config):
    """Wires fakes into the app. Returns a helper exposing client, model, payments."""

    class Gateway:
        def __init__(self):
            self.client = TestClient(app)
            self.model = FakeModel()
            self.payments = FakePayments()
            self.configure()

        def configure(self, **overrides):
            cfg = make_config(**overrides)
            app.dependency_overrides[get_config] = lambda: cfg
            app.dependency_overrides[get_model_factory] = lambda: (lambda _cfg: self.model)
            app.dependency_overrides[get_payments] = lambda: self.payments
            return cfg

        def use_real_model_factory(self):
            app.dependency_overrides.pop(get_model_factory, None)

    gw = Gateway()
    yield gw
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def no_retry_delay(monkeypatch):
    import vision_service
    monkeypatch.setattr(vision_service, "RETRY_DELAY_SECONDS", 0)
