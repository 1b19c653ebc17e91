"""
Gateway request handler tests
Handlers run against the in-memory chain client from conftest
"""

import json

import pytest

from errors import (
    BackendUnreachable,
    InsufficientHistory,
    InvalidConfiguration,
    MalformedIdentity,
    VoteMissingChoice,
    VoterNotFound,
)
from penumbra_client import ChainHead
from penumbra_keys import IdentityKey

IK_ALPHA = IdentityKey(bytes(range(32)))
IK_BETA = IdentityKey(bytes([7] * 32))
IK_GAMMA = IdentityKey(bytes([200] * 32))


# ==================== STAKING HANDLER TESTS ====================


class TestValidatorsHandler:
    """Test validator list handling"""

    def test_all_validators(self, service, fake_client):
        result = service.get_validators()

        assert len(result["validators"]) == 3
        assert result["pagination"] == {"next_key": None, "total": "3"}
        assert fake_client.calls == [("validator_info", True)]
        assert fake_client.closed

    def test_status_filter(self, service):
        result = service.get_validators("BOND_STATUS_UNBONDING")

        assert [v["operator_address"] for v in result["validators"]] == [str(IK_BETA)]
        assert result["validators"][0]["jailed"] is True
        assert result["pagination"]["total"] == "1"

    def test_unknown_status_filter(self, service):
        result = service.get_validators("BOND_STATUS_UNSPECIFIED")

        assert result["validators"] == []
        assert result["pagination"]["total"] == "0"

    def test_staking_params(self, service):
        result = service.get_staking_params()

        assert result["params"]["max_validators"] == 80


# ==================== SLASHING HANDLER TESTS ====================


class TestSlashingHandlers:
    """Test slashing params and signing info handling"""

    def test_slashing_params(self, service):
        result = service.get_slashing_params()

        assert result["params"]["min_signed_per_window"] == "0.950000000000000000"
        assert result["params"]["signed_blocks_window"] == "100"

    def test_zero_window(self, service, fake_client):
        fake_client.params.signed_blocks_window_len = 0

        with pytest.raises(InvalidConfiguration):
            service.get_slashing_params()

    def test_signing_info(self, service, fake_client):
        result = service.get_signing_info(str(IK_ALPHA))

        info = result["val_signing_info"]
        assert info["address"] == str(IK_ALPHA)
        assert info["missed_blocks_counter"] == "3"
        assert fake_client.calls == [("validator_uptime", IK_ALPHA)]

    def test_signing_info_malformed_key(self, service, fake_client):
        with pytest.raises(MalformedIdentity):
            service.get_signing_info("penumbravalid1garbage")
        assert fake_client.calls == []


# ==================== GOVERNANCE HANDLER TESTS ====================


class TestProposalHandlers:
    """Test proposal handling"""

    def test_single_proposal(self, service, fake_client):
        result = service.get_proposal(1)

        proposal = result["proposal"]
        assert proposal["proposal_id"] == "1"
        assert proposal["status"] == "PROPOSAL_STATUS_VOTING_PERIOD"
        assert proposal["voting_start_time"] == "1970-01-01T02:55:00Z"
        assert proposal["voting_end_time"] == "1970-01-01T03:11:40Z"
        assert fake_client.count("block_by_height") == 1

    def test_proposal_list(self, service):
        result = service.get_proposals()

        statuses = [p["status"] for p in result["proposals"]]
        assert statuses == [
            "PROPOSAL_STATUS_VOTING_PERIOD",
            "PROPOSAL_STATUS_PASSED",
            "PROPOSAL_STATUS_REJECTED",
            "ProposalStatus_PROPOSAL_STATUS_UNSPECIFIED",
        ]
        assert result["pagination"] == {"next_key": None, "total": "4"}

    def test_block_time_sampled_once_per_request(self, service, fake_client):
        service.get_proposals()

        assert fake_client.count("chain_head") == 1
        assert fake_client.count("block_by_height") == 1

    def test_chain_too_young(self, service, fake_client):
        fake_client.head = ChainHead(height=50, time=500.0)

        with pytest.raises(InsufficientHistory):
            service.get_proposals()

    def test_repeated_requests_identical(self, service):
        first = json.dumps(service.get_proposals(), sort_keys=True)
        second = json.dumps(service.get_proposals(), sort_keys=True)
        assert first == second


class TestVoteHandler:
    """Test vote lookup"""

    def test_vote_found(self, service):
        result = service.get_vote(1, str(IK_ALPHA))

        assert result["vote"]["option"] == "VOTE_OPTION_YES"
        assert result["vote"]["voter"] == str(IK_ALPHA)
        assert result["vote"]["proposal_id"] == "1"

    def test_vote_no(self, service):
        result = service.get_vote(1, str(IK_GAMMA))

        assert result["vote"]["option"] == "VOTE_OPTION_NO"

    def test_voter_not_found(self, service):
        voter = str(IdentityKey(bytes([42] * 32)))

        with pytest.raises(VoterNotFound) as exc_info:
            service.get_vote(1, voter)

        assert voter in exc_info.value.message
        assert "1" in exc_info.value.message
        assert exc_info.value.http_status == 400

    def test_no_votes_for_proposal(self, service):
        with pytest.raises(VoterNotFound):
            service.get_vote(99, str(IK_ALPHA))

    def test_vote_missing_choice(self, service):
        with pytest.raises(VoteMissingChoice) as exc_info:
            service.get_vote(1, str(IK_BETA))

        assert exc_info.value.http_status == 400
        assert str(IK_BETA) in exc_info.value.message


# ==================== BACKEND FAILURE TESTS ====================


class TestBackendFailures:
    """Test that client errors propagate to the caller"""

    def test_backend_unreachable(self, service, fake_client):
        def unreachable(show_inactive=True):
            raise BackendUnreachable("connection refused")

        fake_client.validator_info = unreachable

        with pytest.raises(BackendUnreachable):
            service.get_validators()
        assert fake_client.closed

    def test_node_status(self, service):
        result = service.get_node_status()

        assert result == {"latest_block_height": 1100, "latest_block_time": 11000.0}
