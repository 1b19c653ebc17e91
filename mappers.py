"""
Entity mappers
Translate native Penumbra records into Cosmos SDK REST response objects.
Pure functions: no I/O, output depends only on the arguments.
"""

import base64
from decimal import Decimal
from typing import Any, Dict, Optional

from block_time import estimate_time_at, format_timestamp
from errors import InvalidConfiguration
from penumbra_client import (
    BondingState,
    ChainHead,
    ChainParameters,
    ProposalOutcome,
    ProposalRecord,
    ProposalState,
    UptimeRecord,
    ValidatorRecord,
    ValidatorState,
)

EPOCH_TIME = "1970-01-01T00:00:00Z"
EPOCH_TIME_MILLIS = "1970-01-01T00:00:00.000Z"

# ==================== STAKING CONSTANTS ====================

BOND_STATUS = {
    BondingState.BONDED: "BOND_STATUS_BONDED",
    BondingState.UNBONDING: "BOND_STATUS_UNBONDING",
    BondingState.UNBONDED: "BOND_STATUS_UNBONDED",
}
CONSENSUS_PUBKEY_TYPE = "/cosmos.crypto.ed25519.PubKey"

# No native counterparts; emitted as fixed values
UNBONDING_HEIGHT = "0"
UNBONDING_TIME = EPOCH_TIME
COMMISSION_RATE = "0.05"
COMMISSION_MAX_RATE = "1.0"
COMMISSION_MAX_CHANGE_RATE = "1.0"
COMMISSION_UPDATE_TIME = "2023-08-04T06:00:00.000000000Z"
MIN_SELF_DELEGATION = "0"

STAKING_UNBONDING_TIME = "1814400s"  # 21 days
STAKING_MAX_ENTRIES = 7
STAKING_HISTORICAL_ENTRIES = 10000
BOND_DENOM = "upenumbra"

# ==================== SLASHING CONSTANTS ====================

DEC_PRECISION = Decimal(10) ** -18
DOWNTIME_JAIL_DURATION = "0s"
SLASH_FRACTION_DOUBLE_SIGN = "0.0"
SLASH_FRACTION_DOWNTIME = "0.0"

SIGNING_INFO_START_HEIGHT = "0"
SIGNING_INFO_INDEX_OFFSET = "0"
SIGNING_INFO_JAILED_UNTIL = EPOCH_TIME
SIGNING_INFO_TOMBSTONED = False

# ==================== GOVERNANCE CONSTANTS ====================

PROPOSAL_CONTENT_TYPE = "penumbra.core.component.governance.v1.Signaling"
PROPOSAL_STATUS_VOTING_PERIOD = "PROPOSAL_STATUS_VOTING_PERIOD"
PROPOSAL_STATUS_PASSED = "PROPOSAL_STATUS_PASSED"
PROPOSAL_STATUS_REJECTED = "PROPOSAL_STATUS_REJECTED"
PROPOSAL_STATUS_UNSPECIFIED = "ProposalStatus_PROPOSAL_STATUS_UNSPECIFIED"

VOTE_OPTION_YES = "VOTE_OPTION_YES"
VOTE_OPTION_NO = "VOTE_OPTION_NO"
VOTE_OPTION_UNSPECIFIED = "VOTE_OPTION_UNSPECIFIED"
# Native abstain (1) and yes (2) both map to yes
VOTE_OPTIONS = {
    1: VOTE_OPTION_YES,
    2: VOTE_OPTION_YES,
    3: VOTE_OPTION_NO,
}
FULL_VOTE_WEIGHT = "1.000000000000000000"


# ==================== STAKING ====================


def bond_status(record: ValidatorRecord) -> str:
    """Cosmos bond status string for a validator"""
    return BOND_STATUS[record.bonding_state]


def map_validator(record: ValidatorRecord, status: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Map a validator to a Cosmos staking Validator object.

    Returns None when `status` is given and differs from the validator's
    bond status. Unbonding completion height is not surfaced.
    """
    validator_status = bond_status(record)
    if status is not None and status != validator_status:
        return None

    voting_power = str(record.voting_power)
    return {
        "operator_address": str(record.identity_key),
        "consensus_pubkey": {
            "@type": CONSENSUS_PUBKEY_TYPE,
            "key": base64.b64encode(record.consensus_key).decode("ascii"),
        },
        "jailed": record.state is ValidatorState.JAILED,
        "status": validator_status,
        # No separate share accounting on Penumbra
        "tokens": voting_power,
        "delegator_shares": voting_power,
        "description": {
            "moniker": record.name,
            "identity": "",
            "website": record.website,
            "security_contact": "",
            "details": record.description,
        },
        "unbonding_height": UNBONDING_HEIGHT,
        "unbonding_time": UNBONDING_TIME,
        "commission": {
            "commission_rates": {
                "rate": COMMISSION_RATE,
                "max_rate": COMMISSION_MAX_RATE,
                "max_change_rate": COMMISSION_MAX_CHANGE_RATE,
            },
            "update_time": COMMISSION_UPDATE_TIME,
        },
        "min_self_delegation": MIN_SELF_DELEGATION,
    }


def map_staking_params(params: ChainParameters) -> Dict[str, Any]:
    """Cosmos staking Params; only max_validators has a native source"""
    return {
        "unbonding_time": STAKING_UNBONDING_TIME,
        "max_validators": params.active_validator_limit,
        "max_entries": STAKING_MAX_ENTRIES,
        "historical_entries": STAKING_HISTORICAL_ENTRIES,
        "bond_denom": BOND_DENOM,
    }


# ==================== SLASHING ====================


def min_signed_per_window(params: ChainParameters) -> Decimal:
    """Fraction of the signing window a validator must sign"""
    if params.signed_blocks_window_len == 0:
        raise InvalidConfiguration("signed_blocks_window_len is zero")
    missed_fraction = Decimal(params.missed_blocks_maximum) / Decimal(
        params.signed_blocks_window_len
    )
    return Decimal(1) - missed_fraction


def map_slashing_params(params: ChainParameters) -> Dict[str, Any]:
    """Cosmos slashing Params"""
    return {
        "signed_blocks_window": str(params.signed_blocks_window_len),
        "min_signed_per_window": str(min_signed_per_window(params).quantize(DEC_PRECISION)),
        "downtime_jail_duration": DOWNTIME_JAIL_DURATION,
        "slash_fraction_double_sign": SLASH_FRACTION_DOUBLE_SIGN,
        "slash_fraction_downtime": SLASH_FRACTION_DOWNTIME,
    }


def map_signing_info(address: str, uptime: UptimeRecord) -> Dict[str, Any]:
    """Cosmos ValidatorSigningInfo; only the missed block counter is native"""
    return {
        "address": address,
        "start_height": SIGNING_INFO_START_HEIGHT,
        "index_offset": SIGNING_INFO_INDEX_OFFSET,
        "jailed_until": SIGNING_INFO_JAILED_UNTIL,
        "tombstoned": SIGNING_INFO_TOMBSTONED,
        "missed_blocks_counter": str(uptime.missed_blocks),
    }


# ==================== GOVERNANCE ====================


def proposal_status(record: ProposalRecord) -> str:
    if record.state is ProposalState.VOTING:
        return PROPOSAL_STATUS_VOTING_PERIOD
    if record.state is ProposalState.FINISHED:
        if record.outcome is ProposalOutcome.PASSED:
            return PROPOSAL_STATUS_PASSED
        if record.outcome is ProposalOutcome.FAILED:
            return PROPOSAL_STATUS_REJECTED
    return PROPOSAL_STATUS_UNSPECIFIED


def map_proposal(record: ProposalRecord, head: ChainHead, seconds_per_block: float) -> Dict[str, Any]:
    """
    Map a proposal to a Cosmos gov v1beta1 Proposal object.

    Voting start/end times are extrapolated from the chain head using
    `seconds_per_block`. Tally, deposit and submit fields are fixed.
    """
    voting_start = estimate_time_at(record.start_block_height, head, seconds_per_block)
    voting_end = estimate_time_at(record.end_block_height, head, seconds_per_block)

    return {
        "proposal_id": str(record.proposal_id),
        "content": {
            "@type": PROPOSAL_CONTENT_TYPE,
            "title": record.title,
            "description": record.description,
        },
        "status": proposal_status(record),
        "final_tally_result": {
            "yes": "0",
            "abstain": "0",
            "no": "0",
            "no_with_veto": "0",
        },
        "submit_time": EPOCH_TIME_MILLIS,
        "deposit_end_time": EPOCH_TIME_MILLIS,
        "total_deposit": [],
        "voting_start_time": format_timestamp(voting_start),
        "voting_end_time": format_timestamp(voting_end),
    }


def map_vote_option(choice: int) -> str:
    return VOTE_OPTIONS.get(choice, VOTE_OPTION_UNSPECIFIED)


def map_vote(proposal_id: int, voter: str, choice: int) -> Dict[str, Any]:
    """Cosmos Vote object with a single fully weighted option"""
    option = map_vote_option(choice)
    return {
        "proposal_id": str(proposal_id),
        "voter": voter,
        "option": option,
        "options": [{"option": option, "weight": FULL_VOTE_WEIGHT}],
    }
