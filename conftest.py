"""
Shared fixtures: a fixture-backed chain client and the services built on it
"""

from typing import Dict, List
from unittest.mock import patch

import pytest

from gateway_service import GatewayService
from penumbra_client import (
    BlockHeader,
    BondingState,
    ChainHead,
    ChainParameters,
    ChainQueryClient,
    ProposalOutcome,
    ProposalRecord,
    ProposalState,
    UptimeRecord,
    ValidatorRecord,
    ValidatorState,
    VoteRecord,
)
from penumbra_keys import IdentityKey

IK_ALPHA = IdentityKey(bytes(range(32)))
IK_BETA = IdentityKey(bytes([7] * 32))
IK_GAMMA = IdentityKey(bytes([200] * 32))


class FakeChainClient(ChainQueryClient):
    """In-memory chain client returning fixed records"""

    def __init__(self):
        self.validators: List[ValidatorRecord] = [
            ValidatorRecord(
                identity_key=IK_ALPHA,
                consensus_key=b"\x01" * 32,
                name="Alpha",
                website="https://alpha.example",
                description="First validator",
                state=ValidatorState.ACTIVE,
                bonding_state=BondingState.BONDED,
                voting_power=1000,
            ),
            ValidatorRecord(
                identity_key=IK_BETA,
                consensus_key=b"\x02" * 32,
                name="Beta",
                website="",
                description="",
                state=ValidatorState.JAILED,
                bonding_state=BondingState.UNBONDING,
                voting_power=50,
                unbonds_at_height=1200,
            ),
            ValidatorRecord(
                identity_key=IK_GAMMA,
                consensus_key=b"\x03" * 32,
                name="Gamma",
                website="",
                description="",
                state=ValidatorState.INACTIVE,
                bonding_state=BondingState.UNBONDED,
                voting_power=0,
            ),
        ]
        self.params = ChainParameters(
            active_validator_limit=80,
            missed_blocks_maximum=5,
            signed_blocks_window_len=100,
        )
        self.missed_blocks = 3
        self.proposals: Dict[int, ProposalRecord] = {
            1: ProposalRecord(1, "Raise limit", "More validators", ProposalState.VOTING, 1050, 1150),
            2: ProposalRecord(2, "Passed one", "", ProposalState.FINISHED, 900, 1000,
                              outcome=ProposalOutcome.PASSED),
            3: ProposalRecord(3, "Failed one", "", ProposalState.FINISHED, 900, 1000,
                              outcome=ProposalOutcome.FAILED),
            4: ProposalRecord(4, "Withdrawn", "", ProposalState.WITHDRAWN, 900, 1000),
        }
        self.votes: Dict[int, List[VoteRecord]] = {
            1: [
                VoteRecord(IK_ALPHA, 1, 2),
                VoteRecord(IK_BETA, 1, None),
                VoteRecord(IK_GAMMA, 1, 3),
            ],
        }
        self.head = ChainHead(height=1100, time=11000.0)
        self.blocks: Dict[int, BlockHeader] = {1000: BlockHeader(height=1000, time=10000.0)}
        self.calls: List[tuple] = []
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def validator_info(self, show_inactive: bool = True) -> List[ValidatorRecord]:
        self.calls.append(("validator_info", show_inactive))
        return list(self.validators)

    def validator_uptime(self, identity_key: IdentityKey) -> UptimeRecord:
        self.calls.append(("validator_uptime", identity_key))
        return UptimeRecord(identity_key, self.head.height, 100, self.missed_blocks)

    def app_parameters(self) -> ChainParameters:
        self.calls.append(("app_parameters",))
        return self.params

    def proposal_data(self, proposal_id: int) -> ProposalRecord:
        self.calls.append(("proposal_data", proposal_id))
        return self.proposals[proposal_id]

    def proposal_list(self, inactive: bool = True) -> List[ProposalRecord]:
        self.calls.append(("proposal_list", inactive))
        return list(self.proposals.values())

    def validator_votes(self, proposal_id: int) -> List[VoteRecord]:
        self.calls.append(("validator_votes", proposal_id))
        return list(self.votes.get(proposal_id, []))

    def chain_head(self) -> ChainHead:
        self.calls.append(("chain_head",))
        return self.head

    def block_by_height(self, height: int) -> BlockHeader:
        self.calls.append(("block_by_height", height))
        return self.blocks[height]

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


@pytest.fixture
def fake_client() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture
def service(fake_client) -> GatewayService:
    return GatewayService(lambda: fake_client)


@pytest.fixture
def client(service):
    """Flask test client wired to the fake chain"""
    import gateway

    gateway.app.config["TESTING"] = True
    with patch.object(gateway, "service", service):
        with gateway.app.test_client() as c:
            yield c
