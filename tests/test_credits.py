import pytest

from inference_routing.core.credits import CreditCalculator, cost
from inference_routing.models import Backend, CreditConfig


def test_local_backend_is_free():
    assert cost(Backend.LOCAL_FAST, 5000, 3000) == 0


def test_reasoning_cost_above_floor():
    assert cost(Backend.CLOUD_REASONING, 1000, 1000) == 20


def test_floor_dominates_small_exchanges():
    assert cost(Backend.CLOUD_STANDARD, 10, 10) == 10


def test_floor_applies_to_single_token():
    assert cost(Backend.CLOUD_STANDARD, 1, 0) == 10


def test_partial_credit_rounds_up():
    # 4100 tokens at 5 per 1000 = 20.5
    assert cost(Backend.CLOUD_STANDARD, 4000, 100) == 21


@pytest.mark.parametrize("backend", list(Backend))
@pytest.mark.parametrize("tokens", [(0, 0), (1, 1), (999, 1), (50000, 20000)])
def test_cost_is_zero_exactly_for_free_backends(backend, tokens):
    credits = cost(backend, *tokens)
    assert credits >= 0
    assert (credits == 0) == (backend in {Backend.LOCAL_FAST, Backend.SIDECAR, Backend.OFFLINE})


def test_custom_rates():
    calculator = CreditCalculator(CreditConfig(rates={"cloud_standard": 2, "cloud_reasoning": 50},
                                               min_premium_credits=1))
    assert calculator.cost(Backend.CLOUD_STANDARD, 500, 0) == 1
    assert calculator.cost(Backend.CLOUD_REASONING, 2000, 0) == 100
    assert calculator.rate(Backend.SIDECAR) == 0


def test_usd_estimate():
    calculator = CreditCalculator()
    assert calculator.usd_estimate(Backend.LOCAL_FAST, 1000, 1000) == 0.0
    assert calculator.usd_estimate(Backend.CLOUD_STANDARD, 1000, 1000) == pytest.approx(0.018)
    assert calculator.usd_estimate(Backend.CLOUD_REASONING, 1000, 1000) == pytest.approx(0.012)
