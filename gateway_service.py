"""
Gateway request handlers
One method per Cosmos REST endpoint: query the chain, map, return the payload
"""

import logging
from typing import Any, Callable, Dict, Optional

from block_time import estimate_block_time
from errors import VoteMissingChoice, VoterNotFound
from mappers import (
    map_proposal,
    map_signing_info,
    map_slashing_params,
    map_staking_params,
    map_validator,
    map_vote,
)
from penumbra_client import ChainQueryClient
from penumbra_keys import IdentityKey

logger = logging.getLogger(__name__)


def _pagination(total: int) -> Dict[str, Any]:
    return {"next_key": None, "total": str(total)}


class GatewayService:
    """
    Serves Cosmos SDK REST queries from a Penumbra node.
    A fresh client is opened for every request; nothing is kept between calls.
    """

    def __init__(self, client_factory: Callable[[], ChainQueryClient]):
        self.client_factory = client_factory

    # ==================== STAKING ====================

    def get_validators(self, status: Optional[str] = None) -> Dict[str, Any]:
        """Validator list, optionally restricted to one bond status"""
        with self.client_factory() as client:
            records = client.validator_info(show_inactive=True)

        validators = []
        for record in records:
            mapped = map_validator(record, status)
            if mapped is not None:
                validators.append(mapped)

        logger.debug(f"Mapped {len(validators)} of {len(records)} validators (status={status})")
        return {"validators": validators, "pagination": _pagination(len(validators))}

    def get_staking_params(self) -> Dict[str, Any]:
        with self.client_factory() as client:
            params = client.app_parameters()
        return {"params": map_staking_params(params)}

    # ==================== SLASHING ====================

    def get_slashing_params(self) -> Dict[str, Any]:
        with self.client_factory() as client:
            params = client.app_parameters()
        return {"params": map_slashing_params(params)}

    def get_signing_info(self, identity_key: str) -> Dict[str, Any]:
        """Signing info for one validator identity key"""
        parsed = IdentityKey.parse(identity_key)
        with self.client_factory() as client:
            uptime = client.validator_uptime(parsed)
        return {"val_signing_info": map_signing_info(identity_key, uptime)}

    # ==================== GOVERNANCE ====================

    def get_proposals(self) -> Dict[str, Any]:
        """All proposals, with voting times estimated from one block time sample"""
        with self.client_factory() as client:
            records = client.proposal_list(inactive=True)
            head = client.chain_head()
            block_time = estimate_block_time(client, head)

        proposals = [map_proposal(record, head, block_time) for record in records]
        return {"proposals": proposals, "pagination": _pagination(len(proposals))}

    def get_proposal(self, proposal_id: int) -> Dict[str, Any]:
        with self.client_factory() as client:
            record = client.proposal_data(proposal_id)
            head = client.chain_head()
            block_time = estimate_block_time(client, head)
        return {"proposal": map_proposal(record, head, block_time)}

    def get_vote(self, proposal_id: int, voter: str) -> Dict[str, Any]:
        """
        A single validator's vote on a proposal.

        Drains the full vote list and scans it for the voter's identity key.
        Raises VoterNotFound or VoteMissingChoice for client-facing misses.
        """
        with self.client_factory() as client:
            votes = client.validator_votes(proposal_id)

        match = next((v for v in votes if str(v.identity_key) == voter), None)
        if match is None:
            logger.info(f"Voter {voter} not found among {len(votes)} votes on proposal {proposal_id}")
            raise VoterNotFound(voter, proposal_id)
        if match.vote is None:
            logger.info(f"Voter {voter} has no recorded choice on proposal {proposal_id}")
            raise VoteMissingChoice(voter, proposal_id)

        return {"vote": map_vote(proposal_id, voter, match.vote)}

    # ==================== STATUS ====================

    def get_node_status(self) -> Dict[str, Any]:
        """Latest height and time reported by the node"""
        with self.client_factory() as client:
            head = client.chain_head()
        return {"latest_block_height": head.height, "latest_block_time": head.time}
