from __future__ import annotations

import json
from pathlib import Path

import pytest

from ordinals_sdk import cli
from ordinals_sdk.mempool_client import MempoolTransportError

WIF_ONE = "KwDiBf89QgGbjEhKnhXJuH7LrciVrZi3qYjgd9M7rFU73sVHnoWn"
FUNDING_ADDRESS = "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"
TESTNET_WIF_ONE = "cMahea7zqjxrtgAbB7LSGbcQUr1uX1ojuat9jZodMN87JcbXMTcA"
TESTNET_ADDRESS = "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx"


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("ordinals_sdk.config.DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")
    monkeypatch.setattr("ordinals_sdk.config._CONFIG_PATH_OVERRIDE", None)
    for name in ("ORDINALS_NETWORK", "ORDINALS_FEE_RATE", "ORDINALS_WIF", "ORDINALS_MEMPOOL_URL"):
        monkeypatch.delenv(name, raising=False)


class StubMempoolClient:
    sent: list[str] = []
    failure: Exception | None = None

    def __init__(self, config) -> None:
        self.config = config

    def broadcast(self, raw_tx: str) -> str:
        if StubMempoolClient.failure is not None:
            raise StubMempoolClient.failure
        StubMempoolClient.sent.append(raw_tx)
        return ""

    def recommended_fees(self) -> dict:
        return {}


@pytest.fixture(autouse=True)
def reset_stub_client() -> None:
    StubMempoolClient.sent = []
    StubMempoolClient.failure = None


def _write_utxos(tmp_path: Path, address: str) -> Path:
    utxo_path = tmp_path / "utxos.json"
    utxo_path.write_text(json.dumps([{"txid": "cd" * 32, "vout": 0, "value": 50_000, "address": address}]))
    return utxo_path


def _commit_args(utxo_path: Path, session_path: Path, wif: str, address: str) -> list[str]:
    return [
        "commit",
        "--text",
        "Hello, Ordinals!",
        "--wif",
        wif,
        "--utxos",
        str(utxo_path),
        "--change-address",
        address,
        "--receiver",
        address,
        "--fee-rate",
        "2",
        "--session",
        str(session_path),
    ]


def test_envelope_command_prints_script(capsys: pytest.CaptureFixture[str]) -> None:
    cli.main(["envelope", "--text", "Hello, Ordinals!"])

    output = json.loads(capsys.readouterr().out)
    assert output["content_type"] == "text/plain"
    assert output["script_hex"].startswith("0063036f7264010a746578742f706c61696e00")
    assert output["script_hex"].endswith("68")


def test_brc20_deploy_command(capsys: pytest.CaptureFixture[str]) -> None:
    cli.main(["brc20", "deploy", "--tick", "test", "--max", "21000000", "--lim", "1000"])

    output = json.loads(capsys.readouterr().out)
    assert output["payload"] == '{"p":"brc-20","op":"deploy","tick":"test","max":"21000000","lim":"1000"}'


def test_brc20_mint_requires_amount() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["brc20", "mint", "--tick", "test"])

    assert excinfo.value.code == 1


def test_address_command(capsys: pytest.CaptureFixture[str]) -> None:
    cli.main(["address", "--wif", WIF_ONE, "--type", "p2wpkh"])

    assert capsys.readouterr().out.strip() == FUNDING_ADDRESS


def test_address_command_rejects_network_mismatch() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--network", "testnet", "address", "--wif", WIF_ONE])

    assert excinfo.value.code == 1


def test_commit_reveal_status_flow(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    utxo_path = _write_utxos(tmp_path, FUNDING_ADDRESS)
    session_path = tmp_path / "session.json"

    cli.main(
        [
            "commit",
            "--text",
            "Hello, Ordinals!",
            "--wif",
            WIF_ONE,
            "--utxos",
            str(utxo_path),
            "--change-address",
            FUNDING_ADDRESS,
            "--receiver",
            FUNDING_ADDRESS,
            "--fee-rate",
            "2",
            "--no-broadcast",
            "--session",
            str(session_path),
        ]
    )
    commit_output = json.loads(capsys.readouterr().out)
    assert commit_output["state"] == "commit_pending"
    assert session_path.exists()

    cli.main(["reveal", "--wif", WIF_ONE, "--session", str(session_path), "--no-broadcast"])
    reveal_output = json.loads(capsys.readouterr().out)
    assert reveal_output["state"] == "commit_pending"
    assert reveal_output["reveal_txid"]
    assert reveal_output["inscription_id"] is None

    monkeypatch.setattr(cli, "MempoolClient", StubMempoolClient)
    cli.main(["reveal", "--wif", WIF_ONE, "--session", str(session_path)])
    reveal_output = json.loads(capsys.readouterr().out)
    assert reveal_output["state"] == "revealed"
    assert reveal_output["inscription_id"].endswith("i0")
    assert StubMempoolClient.sent == [reveal_output["reveal_hex"]]

    cli.main(["inscribe-status", "--session", str(session_path)])
    status = json.loads(capsys.readouterr().out)
    assert status["state"] == "revealed"
    assert status["commit"].endswith(":0")


def test_missing_key_is_reported(tmp_path: Path) -> None:
    utxo_path = tmp_path / "utxos.json"
    utxo_path.write_text("[]")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(
            [
                "commit",
                "--text",
                "x",
                "--utxos",
                str(utxo_path),
                "--change-address",
                FUNDING_ADDRESS,
                "--receiver",
                FUNDING_ADDRESS,
            ]
        )

    assert excinfo.value.code == 1


def test_commit_receipt_is_written_before_broadcast(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(cli, "MempoolClient", StubMempoolClient)
    StubMempoolClient.failure = MempoolTransportError("timeout", status_code=504)
    session_path = tmp_path / "session.json"

    with pytest.raises(SystemExit) as excinfo:
        cli.main(_commit_args(_write_utxos(tmp_path, FUNDING_ADDRESS), session_path, WIF_ONE, FUNDING_ADDRESS))

    assert excinfo.value.code == 1
    receipt = json.loads(session_path.read_text())
    assert receipt["state"] == "commit_pending"
    assert receipt["commit_broadcast"] is False
    assert receipt["commit_hex"]


def test_reveal_uses_the_session_network(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    session_path = tmp_path / "session.json"
    cli.main(
        ["--network", "testnet"]
        + _commit_args(_write_utxos(tmp_path, TESTNET_ADDRESS), session_path, TESTNET_WIF_ONE, TESTNET_ADDRESS)
        + ["--no-broadcast"]
    )
    capsys.readouterr()

    cli.main(["reveal", "--wif", TESTNET_WIF_ONE, "--session", str(session_path), "--no-broadcast"])
    reveal_output = json.loads(capsys.readouterr().out)

    assert reveal_output["network"] == "testnet"
    assert reveal_output["reveal_txid"]


def test_reveal_rejects_key_from_other_network(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    session_path = tmp_path / "session.json"
    cli.main(
        ["--network", "testnet"]
        + _commit_args(_write_utxos(tmp_path, TESTNET_ADDRESS), session_path, TESTNET_WIF_ONE, TESTNET_ADDRESS)
        + ["--no-broadcast"]
    )

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["reveal", "--wif", WIF_ONE, "--session", str(session_path), "--no-broadcast"])

    assert excinfo.value.code == 1
    assert "testnet" in capsys.readouterr().err
