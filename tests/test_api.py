import json
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from conftest import OTHER, PAY_TO, TX_HASH, make_config, make_plan, make_step
from planpay.api.app import create_app
from planpay.api.services import Services
from planpay.core.errors import PlannerError
from planpay.core.plan_schemas import Plan


class FakePlanner:
    def __init__(self, plan=None, error=None):
        self.plan = plan
        self.error = error
        self.queries = []

    def create_plan(self, query):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.plan


def _wallet_plan():
    return make_plan(
        make_step("analyze-wallet", {"address": "0xAAA", "chain": "base"}),
        make_step("risk-score", depends_on=[0]),
    )


@pytest.fixture
def make_client(registry, bench, gate):
    def factory(*, planner=None, config=None, payments=True):
        services = Services(
            config=config or make_config(),
            registry=registry,
            adapter=bench.adapter(),
            gate=gate if payments else None,
            planner=planner,
        )
        return TestClient(create_app(services))

    return factory


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def wallet_tools(bench):
    bench.bind("analyze-wallet", {"wallet": {"address": "0xAAA", "chain": "base"}})
    bench.bind("risk-score", {"score": 12})
    return bench


def test_info(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json()["namespaces"] == ["chainintel"]
    assert r.json()["payments"]["enabled"] is True


def test_tools_lists_prices(client):
    r = client.get("/tools")
    assert r.status_code == 200
    tools = {t["tool"]: t for t in r.json()["tools"]}
    assert tools["analyze-wallet"]["price"] == "0.01"
    assert tools["analyze-wallet"]["mcp"] == "chainintel"


def test_execute_without_proof_is_challenged(client, wallet_tools):
    r = client.post("/execute", json={"plan": _wallet_plan()})

    assert r.status_code == 402
    body = r.json()
    assert body["payment_details"]["price"] == "0.001"
    assert body["payment_details"]["payTo"] == PAY_TO
    assert r.headers["X-Payment-Required"] == "true"
    assert wallet_tools.calls == []


def test_execute_with_header_proof(client, chain, wallet_tools):
    chain.add()
    r = client.post("/execute", json={"plan": _wallet_plan()}, headers={"x-payment": TX_HASH})

    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["totalCost"] == pytest.approx(0.015)
    assert [s["tool"] for s in body["results"]] == ["analyze-wallet", "risk-score"]
    assert body["runId"]
    _, params = wallet_tools.calls[1]
    assert params["address"] == "0xAAA"


def test_execute_with_body_proof(client, chain, wallet_tools):
    chain.add()
    proof = json.dumps({"transactionHash": TX_HASH, "from": "0x1", "to": PAY_TO, "value": "0.001"})
    r = client.post("/execute", json={"plan": _wallet_plan(), "paymentProof": proof})
    assert r.status_code == 200


def test_payment_to_wrong_address_is_denied(client, chain, wallet_tools):
    chain.add(to=OTHER)
    r = client.post("/execute", json={"plan": _wallet_plan()}, headers={"x-payment": TX_HASH})

    assert r.status_code == 402
    assert r.json()["reason"] == "wrong-recipient"
    assert wallet_tools.calls == []


def test_invalid_plan_rejected_before_payment(client, chain):
    plan = make_plan(make_step("analyze-wallet"), make_step("risk-score", depends_on=[1]))
    r = client.post("/execute", json={"plan": plan}, headers={"x-payment": TX_HASH})

    assert r.status_code == 400
    assert r.json()["errors"] == ["Step 1: Invalid dependency on step 1 (must depend on earlier steps)"]
    assert chain.reads == 0


def test_missing_plan(client):
    r = client.post("/execute", json={})
    assert r.status_code == 400
    assert r.json()["error"] == "Missing plan parameter"


def test_failed_run_is_not_an_http_error(client, chain, bench):
    bench.bind("analyze-wallet", error=RuntimeError("upstream down"))
    bench.bind("risk-score")
    chain.add()
    r = client.post("/execute", json={"plan": _wallet_plan()}, headers={"x-payment": TX_HASH})

    assert r.status_code == 200
    body = r.json()
    assert body["success"] is False
    assert body["errors"] == ["Step 0 (chainintel::analyze-wallet): upstream down"]
    assert len(body["results"]) == 1


def test_chain_outage_returns_500(client, chain, infra_error, wallet_tools):
    chain.fail_with = infra_error
    r = client.post("/execute", json={"plan": _wallet_plan()}, headers={"x-payment": TX_HASH})
    assert r.status_code == 500
    assert r.json()["error"].startswith("Payment verification failed")
    assert wallet_tools.calls == []


def test_payments_not_configured(make_client):
    r = make_client(payments=False).post("/execute", json={"plan": _wallet_plan()})
    assert r.status_code == 503


def test_plan_pricing_mode_charges_plan_cost(make_client, chain, wallet_tools):
    client = make_client(config=make_config(pricing_mode="plan"))

    r = client.post("/execute", json={"plan": _wallet_plan()})
    assert r.json()["payment_details"]["price"] == "0.015"

    # the fake chain holds a 0.001 ETH payment
    chain.add()
    r = client.post("/execute", json={"plan": _wallet_plan()}, headers={"x-payment": TX_HASH})
    assert r.status_code == 402
    assert r.json()["reason"] == "insufficient-amount"


def test_plan_pricing_keeps_configured_floor(make_client):
    client = make_client(config=make_config(pricing_mode="plan", price=Decimal("0.05")))
    r = client.post("/execute", json={"plan": _wallet_plan()})
    assert r.json()["payment_details"]["price"] == "0.05"


def test_plan_endpoint(make_client):
    planner = FakePlanner(Plan.model_validate(_wallet_plan()))
    r = make_client(planner=planner).post("/plan", json={"query": "Is 0xAAA risky?"})

    assert r.status_code == 200
    body = r.json()
    assert body["plan"]["steps"][0]["toolName"] == "analyze-wallet"
    assert body["estimatedCost"] == pytest.approx(0.015)
    assert body["estimatedTime"] == 6
    assert planner.queries == ["Is 0xAAA risky?"]


def test_plan_endpoint_requires_query(make_client):
    r = make_client(planner=FakePlanner()).post("/plan", json={"query": "  "})
    assert r.status_code == 400


def test_plan_endpoint_rejects_invalid_plan(make_client):
    bad = Plan.model_validate(make_plan(make_step("get_weather")))
    r = make_client(planner=FakePlanner(bad)).post("/plan", json={"query": "weather?"})
    assert r.status_code == 422
    assert r.json()["errors"] == ["Step 0: Unknown tool chainintel::get_weather"]


def test_plan_endpoint_planner_failure(make_client):
    planner = FakePlanner(error=PlannerError("Failed to create execution plan: LLM failed after 3 attempts"))
    r = make_client(planner=planner).post("/plan", json={"query": "anything"})
    assert r.status_code == 502


def test_plan_endpoint_without_planner(client):
    r = client.post("/plan", json={"query": "anything"})
    assert r.status_code == 503


def test_non_object_body_is_bad_request(client):
    r = client.post("/execute", json=["plan"])
    assert r.status_code == 400
