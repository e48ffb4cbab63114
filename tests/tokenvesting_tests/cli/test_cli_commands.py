"""
CLI command tests: leaf, verify, schedule, delegation-digest, check-config.
"""

import pytest
from click.testing import CliRunner

from tokenvesting.blockchain.merkle import compute_leaf
from tokenvesting.cli.main import cli
from tokenvesting.core.delegation import delegation_digest


@pytest.fixture
def runner():
    return CliRunner()


def allocation_args(tree, index):
    identity, allocation, start, end, pct = tree.allocations[index]
    return [
        "--identity", identity.hex(),
        "--allocation", str(allocation),
        "--start", str(start),
        "--end", str(end),
        "--unlock-pct", str(pct),
    ]


class TestLeafCommand:
    def test_prints_leaf_hash(self, runner, tree):
        result = runner.invoke(cli, ["leaf", *allocation_args(tree, 1)])
        assert result.exit_code == 0, result.output
        assert "0x" + compute_leaf(*tree.allocations[1]).hex() in result.output

    def test_malformed_identity(self, runner):
        result = runner.invoke(cli, [
            "leaf", "--identity", "0x1234", "--allocation", "1",
            "--start", "0", "--end", "1", "--unlock-pct", "0",
        ])
        assert result.exit_code == 1
        assert "Error" in result.output


class TestVerifyCommand:
    def test_valid_proof(self, runner, tree):
        proof_args = []
        for item in tree.proof(0):
            proof_args += ["-p", "0x" + item.hex()]
        result = runner.invoke(cli, [
            "verify", "--root", "0x" + tree.root.hex(), *allocation_args(tree, 0), *proof_args,
        ])
        assert result.exit_code == 0, result.output
        assert "valid" in result.output

    def test_invalid_proof(self, runner, tree):
        result = runner.invoke(cli, [
            "verify", "--root", "0x" + tree.root.hex(), *allocation_args(tree, 0),
            "-p", "0x" + "00" * 32,
        ])
        assert result.exit_code == 1
        assert "invalid" in result.output


class TestScheduleCommand:
    def test_table_of_amounts(self, runner):
        result = runner.invoke(cli, [
            "schedule", "--allocation", "1000", "--start", "0", "--end", "100",
            "--unlock-pct", "10", "--at", "50", "--at", "150",
        ])
        assert result.exit_code == 0, result.output
        assert "550" in result.output
        assert "1000" in result.output

    def test_rejects_degenerate_terms(self, runner):
        result = runner.invoke(cli, [
            "schedule", "--allocation", "1000", "--start", "50", "--end", "50",
            "--unlock-pct", "0", "--at", "50",
        ])
        assert result.exit_code == 1
        assert "Start time must be before end time" in result.output


class TestDelegationDigestCommand:
    def test_prints_digest(self, runner, foreign_identity, dave):
        result = runner.invoke(cli, [
            "delegation-digest", "--identity", foreign_identity.hex(), "--recipient", dave.address,
        ])
        assert result.exit_code == 0, result.output
        assert "0x" + delegation_digest(foreign_identity, dave.address).hex() in result.output


class TestCheckConfigCommand:
    def test_valid_environment(self, runner, owner, authority, tree):
        result = runner.invoke(cli, ["check-config"], env={
            "TOKENVESTING_OWNER": owner.address,
            "TOKENVESTING_AUTHORITY_SIGNER": authority.address,
            "TOKENVESTING_COMMITMENT_ROOT": "0x" + tree.root.hex(),
        })
        assert result.exit_code == 0, result.output
        assert authority.address in result.output

    def test_missing_authority(self, runner, owner, tree):
        result = runner.invoke(cli, ["check-config"], env={
            "TOKENVESTING_OWNER": owner.address,
            "TOKENVESTING_AUTHORITY_SIGNER": "",
            "TOKENVESTING_COMMITMENT_ROOT": "0x" + tree.root.hex(),
        })
        assert result.exit_code == 1
        assert "TOKENVESTING_AUTHORITY_SIGNER" in result.output


class TestLogLevelOption:
    def test_accepts_known_level_any_case(self, runner, tree):
        result = runner.invoke(cli, ["--log-level", "debug", "leaf", *allocation_args(tree, 1)])
        assert result.exit_code == 0, result.output

    def test_rejects_unknown_level(self, runner, tree):
        result = runner.invoke(cli, ["--log-level", "bogus", "leaf", *allocation_args(tree, 1)])
        assert result.exit_code == 2
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert "Invalid value for '--log-level'" in result.output
