import json

import pytest

from conftest import PAY_TO, PAYER, PRICE, TX_HASH
from planpay.core.errors import ProofInvalid
from planpay.payments.proof import PaymentChallenge, chain_id_of, parse_proof


def test_bare_hash():
    assert parse_proof(f"  {TX_HASH} ").transaction_hash == TX_HASH


def test_json_string_proof():
    raw = json.dumps({"transactionHash": TX_HASH, "from": PAYER, "to": PAY_TO, "value": "0.001", "chainId": 84532})
    proof = parse_proof(raw)
    assert proof.transaction_hash == TX_HASH
    assert proof.claimed_from == PAYER
    assert proof.claimed_to == PAY_TO
    assert proof.claimed_value == "0.001"
    assert proof.chain_id == 84532


def test_decoded_object_with_short_names():
    proof = parse_proof({"txHash": TX_HASH, "amount": 1000})
    assert proof.transaction_hash == TX_HASH
    assert proof.claimed_value == 1000


@pytest.mark.parametrize(
    "raw",
    [
        "not-a-hash",
        "0x1234",
        "{not json",
        "[1, 2]",
        {"from": PAYER},
        {"transactionHash": "0x" + "zz" * 32},
        12345,
    ],
)
def test_malformed_proofs(raw):
    with pytest.raises(ProofInvalid) as exc:
        parse_proof(raw)
    assert exc.value.reason == "malformed-proof"


def test_challenge_body_and_headers():
    challenge = PaymentChallenge(resource_url="http://svc/execute", price=PRICE, pay_to=PAY_TO, network="eip155:84532")
    body = challenge.body()
    assert body["error"] == "Payment Required"
    assert body["payment_details"] == {
        "price": "0.001",
        "payTo": PAY_TO,
        "network": "eip155:84532",
        "protocol": "x402",
    }
    headers = challenge.headers()
    assert headers["X-Payment-Required"] == "true"
    assert headers["X-Payment-Amount"] == "0.001"
    assert headers["X-Payment-Recipient"] == PAY_TO


@pytest.mark.parametrize(
    "network, expected",
    [("eip155:84532", 84532), ("eip155:1", 1), ("8453", 8453), ("base-sepolia", None)],
)
def test_chain_id_of(network, expected):
    assert chain_id_of(network) == expected


@pytest.mark.parametrize("chain_id", ["0x14a34", "84532", 84532])
def test_chain_id_hex_or_decimal(chain_id):
    proof = parse_proof({"transactionHash": TX_HASH, "chainId": chain_id})
    assert proof.chain_id == 84532


def test_hex_chain_id_from_json_string_is_verified(chain, verifier):
    chain.add()
    proof = parse_proof(json.dumps({"transactionHash": TX_HASH, "chainId": "0x14a34"}))
    assert verifier.verify(proof, price=PRICE).transaction_hash == TX_HASH


def test_unparseable_chain_id_is_malformed():
    with pytest.raises(ProofInvalid) as exc:
        parse_proof({"transactionHash": TX_HASH, "chainId": "base"})
    assert exc.value.reason == "malformed-proof"
