import json
from decimal import Decimal

import httpx
import pytest

from conftest import MEME_MINT, POOL, WALLET, run, token_transfer, usdc_buy
from whale_tracker.core.constants import USDC_MINT
from whale_tracker.core.errors import FetchFailure
from whale_tracker.core.prices import StaticPriceOracle
from whale_tracker.engines.classifier import TransferClassifier
from whale_tracker.ingestion.helius import HeliusSource

SWAP = {
    "signature": "sig-1",
    "timestamp": 1700000000,
    "type": "SWAP",
    "source": "RAYDIUM",
    "tokenTransfers": [
        token_transfer(MEME_MINT, 1000000, frm=POOL, to=WALLET),
        token_transfer(USDC_MINT, 25, frm=WALLET, to=POOL),
    ],
    "nativeTransfers": [],
    "transactionError": None,
}


def _source(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HeliusSource(api_key="test-key", api_url="https://helius.test/v0",
                        rpc_url="https://rpc.helius.test", client=client)


def test_fetch_parses_enhanced_transactions():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=[SWAP, {"timestamp": 1, "type": "SWAP"}])

    txs = run(_source(handler).fetch(WALLET, 10))

    assert seen["path"] == f"/v0/addresses/{WALLET}/transactions"
    assert seen["params"] == {"api-key": "test-key", "limit": "10"}
    assert len(txs) == 1
    tx = txs[0]
    assert tx.signature == "sig-1"
    assert tx.type == "SWAP"
    assert tx.token_transfers[0].mint == MEME_MINT
    assert tx.token_transfers[0].to_account == WALLET
    assert tx.error is None


def test_rate_limit_raises_fetch_failure():
    source = _source(lambda request: httpx.Response(429, text="Too Many Requests"))

    with pytest.raises(FetchFailure) as exc:
        run(source.fetch(WALLET, 10))
    assert exc.value.rate_limited
    assert exc.value.address == WALLET


@pytest.mark.parametrize("response", [
    httpx.Response(500, text="boom"),
    httpx.Response(200, text="not json"),
    httpx.Response(200, json={"error": "unexpected"}),
])
def test_bad_responses_raise_fetch_failure(response):
    with pytest.raises(FetchFailure):
        run(_source(lambda request: response).fetch(WALLET, 10))


def test_network_error_raises_fetch_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(FetchFailure):
        run(_source(handler).fetch(WALLET, 10))


def test_token_creation_time_uses_last_item():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=[{"timestamp": 1700000500}, {"timestamp": 1699990000}])

    assert run(_source(handler).get_token_creation_time(MEME_MINT)) == 1699990000
    assert seen["params"]["limit"] == "1"
    assert seen["params"]["type"] == "any"


def test_token_creation_time_unknown():
    assert run(_source(lambda r: httpx.Response(200, json=[])).get_token_creation_time(MEME_MINT)) is None
    assert run(_source(lambda r: httpx.Response(503)).get_token_creation_time(MEME_MINT)) is None


def test_token_metadata_cached():
    calls = []

    def handler(request):
        calls.append(json.loads(request.content))
        return httpx.Response(200, json={
            "jsonrpc": "2.0",
            "id": "whale-tracker",
            "result": {"content": {"metadata": {"name": "Meme Coin", "symbol": "MEME"}}},
        })

    source = _source(handler)

    async def twice():
        return await source.get_token_metadata(MEME_MINT), await source.get_token_metadata(MEME_MINT)

    first, second = run(twice())

    assert first == {"name": "Meme Coin", "symbol": "MEME"}
    assert second == first
    assert len(calls) == 1
    assert calls[0]["method"] == "getAsset"
    assert calls[0]["params"] == {"id": MEME_MINT}


def test_token_metadata_falls_back_to_address():
    source = _source(lambda r: httpx.Response(200, json={"error": {"code": -32000}}))
    metadata = run(source.get_token_metadata(MEME_MINT))
    assert metadata == {"name": f"{MEME_MINT[:4]}...{MEME_MINT[-4:]}", "symbol": MEME_MINT[:6]}


@pytest.mark.parametrize("result", [
    {"content": {"metadata": None}},
    {"content": None},
    {"content": {"metadata": {"name": None, "symbol": ""}}},
])
def test_token_metadata_null_fields_fall_back(result):
    source = _source(lambda r: httpx.Response(200, json={"jsonrpc": "2.0", "id": "whale-tracker", "result": result}))
    metadata = run(source.get_token_metadata(MEME_MINT))
    assert metadata == {"name": f"{MEME_MINT[:4]}...{MEME_MINT[-4:]}", "symbol": MEME_MINT[:6]}


def test_classifier_survives_null_metadata():
    source = _source(lambda r: httpx.Response(200, json={"result": {"content": {"metadata": None}}}))
    classifier = TransferClassifier(source, StaticPriceOracle(Decimal("100")), max_token_age_minutes=0)

    parsed = run(classifier.classify(usdc_buy("b1"), WALLET))

    assert parsed.direction == "buy"
    assert parsed.token_symbol == MEME_MINT[:6]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
