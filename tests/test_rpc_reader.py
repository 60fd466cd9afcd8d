import base64
import json
import httpx
import pytest

from proven.services.chain import RpcAccountReader, RpcError


def _reader(handler) -> RpcAccountReader:
    return RpcAccountReader(url="http://rpc.test", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def _reply(result=None, error=None):
    body = {"jsonrpc": "2.0", "id": 1}
    if error is not None:
        body["error"] = error
    else:
        body["result"] = result
    return httpx.Response(200, json=body)


async def test_balances_and_account_data():
    seen = []

    def handler(request: httpx.Request):
        call = json.loads(request.content)
        seen.append(call["method"])
        if call["method"] == "getBalance":
            return _reply({"value": 5_000_000})
        if call["method"] == "getTokenAccountBalance":
            return _reply({"value": {"amount": "1500000", "decimals": 6}})
        return _reply({"value": {"data": [base64.b64encode(b"\x01\x02").decode(), "base64"]}})

    reader = _reader(handler)
    assert await reader.get_balance("Addr") == 5_000_000
    assert await reader.get_token_account_balance("Ata") == 1_500_000
    assert await reader.get_account_data("Pda") == b"\x01\x02"
    assert seen == ["getBalance", "getTokenAccountBalance", "getAccountInfo"]
    await reader.aclose()


async def test_missing_accounts_read_as_none():
    def handler(request: httpx.Request):
        call = json.loads(request.content)
        if call["method"] == "getTokenAccountBalance":
            return _reply(error={"code": -32602, "message": "Invalid param: could not find account"})
        return _reply({"value": None})

    reader = _reader(handler)
    assert await reader.get_token_account_balance("Ata") is None
    assert await reader.get_account_data("Pda") is None


async def test_other_rpc_errors_raise():
    reader = _reader(lambda request: _reply(error={"code": -32005, "message": "Node is behind"}))
    with pytest.raises(RpcError) as e:
        await reader.get_token_account_balance("Ata")
    assert e.value.code == -32005
    assert e.value.method == "getTokenAccountBalance"
