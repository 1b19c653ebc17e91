"""
Penumbra Query Client
Typed access to the node's staking, governance, app and status query services
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

import requests

from errors import BackendUnreachable, MissingField
from penumbra_keys import IdentityKey

logger = logging.getLogger(__name__)

STAKE_SERVICE = "penumbra.core.component.stake.v1.QueryService"
APP_SERVICE = "penumbra.core.app.v1.QueryService"
GOVERNANCE_SERVICE = "penumbra.core.component.governance.v1.QueryService"
TENDERMINT_PROXY_SERVICE = "penumbra.util.tendermint_proxy.v1.TendermintProxyService"


# ==================== DATA MODELS ====================


class ValidatorState(Enum):
    """Validator lifecycle state"""

    UNSPECIFIED = 0
    DEFINED = 1
    INACTIVE = 2
    ACTIVE = 3
    JAILED = 4
    TOMBSTONED = 5
    DISABLED = 6


class BondingState(Enum):
    """Stake-lock phase of a validator"""

    UNSPECIFIED = 0
    BONDED = 1
    UNBONDING = 2
    UNBONDED = 3


class ProposalState(Enum):
    """Governance proposal lifecycle state"""

    UNSPECIFIED = "unspecified"
    VOTING = "voting"
    WITHDRAWN = "withdrawn"
    FINISHED = "finished"
    CLAIMED = "claimed"


class ProposalOutcome(Enum):
    """Outcome of a finished or claimed proposal"""

    PASSED = "passed"
    FAILED = "failed"
    SLASHED = "slashed"


VOTE_CHOICES = {
    "VOTE_UNSPECIFIED": 0,
    "VOTE_ABSTAIN": 1,
    "VOTE_YES": 2,
    "VOTE_NO": 3,
}


@dataclass
class ValidatorRecord:
    """Validator definition together with its current status"""

    identity_key: IdentityKey
    consensus_key: bytes
    name: str
    website: str
    description: str
    state: ValidatorState
    bonding_state: BondingState
    voting_power: int
    unbonds_at_height: Optional[int] = None


@dataclass
class ChainParameters:
    """Staking parameters relevant to the Cosmos parameter endpoints"""

    active_validator_limit: int
    missed_blocks_maximum: int
    signed_blocks_window_len: int


@dataclass
class UptimeRecord:
    """Missed-block accounting for one validator"""

    identity_key: IdentityKey
    as_of_block_height: int
    window_len: int
    missed_blocks: int


@dataclass
class ProposalRecord:
    """Governance proposal with its voting heights"""

    proposal_id: int
    title: str
    description: str
    state: ProposalState
    start_block_height: int
    end_block_height: int
    outcome: Optional[ProposalOutcome] = None


@dataclass
class VoteRecord:
    """A validator's vote on a proposal; vote is None when no choice was recorded"""

    identity_key: IdentityKey
    proposal_id: int
    vote: Optional[int]


@dataclass
class ChainHead:
    """Latest block height and time (seconds since epoch)"""

    height: int
    time: float


@dataclass
class BlockHeader:
    """Height and time of a single block"""

    height: int
    time: float


# ==================== PROTO3 JSON HELPERS ====================


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _lookup(message: Dict[str, Any], name: str) -> Any:
    """Find a field by its lowerCamelCase or original snake_case name"""
    camel = _camel(name)
    if camel in message:
        return message[camel]
    return message.get(name)


def _submessage(message: Dict[str, Any], name: str, message_name: str) -> Dict[str, Any]:
    value = _lookup(message, name)
    if not isinstance(value, dict):
        raise MissingField(name, message_name)
    return value


def _int(message: Dict[str, Any], name: str) -> int:
    """Integer scalar; proto3 JSON omits zero values and quotes 64-bit ones"""
    value = _lookup(message, name)
    return int(value) if value is not None else 0


def _str(message: Dict[str, Any], name: str) -> str:
    value = _lookup(message, name)
    return value if value is not None else ""


def _bytes(message: Dict[str, Any], name: str) -> bytes:
    value = _lookup(message, name)
    if not value:
        return b""
    try:
        return base64.b64decode(value)
    except (TypeError, binascii.Error) as e:
        raise BackendUnreachable(f"undecodable bytes field '{name}': {e}") from e


def _enum(value: Any, enum_cls, prefix: str):
    if value is None:
        return enum_cls(0)
    if isinstance(value, str) and value.isdigit():
        value = int(value)
    if isinstance(value, int):
        try:
            return enum_cls(value)
        except ValueError:
            return enum_cls(0)
    return enum_cls.__members__.get(str(value).replace(prefix, "", 1), enum_cls(0))


_TIMESTAMP = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.\d+)?(Z|[+-]\d{2}:\d{2})$"
)


def _timestamp(value: Any, name: str, message_name: str) -> float:
    """Whole seconds since epoch from an RFC 3339 string or {seconds, nanos}"""
    if value is None:
        raise MissingField(name, message_name)
    if isinstance(value, dict):
        return float(_int(value, "seconds"))

    match = _TIMESTAMP.match(str(value))
    if not match:
        raise BackendUnreachable(f"unparseable timestamp in {message_name}: {value!r}")
    offset = "+00:00" if match.group(2) == "Z" else match.group(2)
    return float(int(datetime.fromisoformat(match.group(1) + offset).timestamp()))


# ==================== RESPONSE PARSERS ====================


def parse_validator_info(message: Dict[str, Any]) -> ValidatorRecord:
    """Parse a ValidatorInfoResponse (or a bare ValidatorInfo)"""
    info = _lookup(message, "validator_info") or message
    validator = _submessage(info, "validator", "ValidatorInfo")
    status = _submessage(info, "status", "ValidatorInfo")

    bonding = _submessage(status, "bonding_state", "ValidatorStatus")
    bonding_state = _enum(_lookup(bonding, "state"), BondingState, "BONDING_STATE_ENUM_")
    if bonding_state is BondingState.UNSPECIFIED:
        raise MissingField("bonding_state.state", "ValidatorStatus")
    state = _enum(
        _lookup(_lookup(status, "state") or {}, "state"),
        ValidatorState,
        "VALIDATOR_STATE_ENUM_",
    )
    power = _lookup(status, "voting_power") or {}

    return ValidatorRecord(
        identity_key=IdentityKey.from_proto(
            _submessage(validator, "identity_key", "Validator")
        ),
        consensus_key=_bytes(validator, "consensus_key"),
        name=_str(validator, "name"),
        website=_str(validator, "website"),
        description=_str(validator, "description"),
        state=state,
        bonding_state=bonding_state,
        voting_power=(_int(power, "hi") << 64) | _int(power, "lo"),
        unbonds_at_height=(
            _int(bonding, "unbonds_at_height")
            if bonding_state is BondingState.UNBONDING
            else None
        ),
    )


def parse_app_parameters(message: Dict[str, Any]) -> ChainParameters:
    """Parse an AppParametersResponse down to its stake parameters"""
    app_parameters = _submessage(message, "app_parameters", "AppParametersResponse")
    stake = _submessage(app_parameters, "stake_params", "AppParameters")
    return ChainParameters(
        active_validator_limit=_int(stake, "active_validator_limit"),
        missed_blocks_maximum=_int(stake, "missed_blocks_maximum"),
        signed_blocks_window_len=_int(stake, "signed_blocks_window_len"),
    )


def count_missed_blocks(bitvec: bytes, window_len: int) -> int:
    """Count unsigned blocks in an LSB-first signature bit vector"""
    missed = 0
    for index in range(min(window_len, len(bitvec) * 8)):
        if not (bitvec[index // 8] >> (index % 8)) & 1:
            missed += 1
    return missed


def parse_uptime(message: Dict[str, Any], identity_key: IdentityKey) -> UptimeRecord:
    """Parse a ValidatorUptimeResponse"""
    uptime = _submessage(message, "uptime", "ValidatorUptimeResponse")
    window_len = _int(uptime, "window_len")
    return UptimeRecord(
        identity_key=identity_key,
        as_of_block_height=_int(uptime, "as_of_block_height"),
        window_len=window_len,
        missed_blocks=count_missed_blocks(_bytes(uptime, "bitvec"), window_len),
    )


def _parse_proposal_state(state: Dict[str, Any]):
    """Resolve the ProposalState oneof and any recorded outcome"""
    for proposal_state in (
        ProposalState.VOTING,
        ProposalState.WITHDRAWN,
        ProposalState.FINISHED,
        ProposalState.CLAIMED,
    ):
        body = state.get(proposal_state.value)
        if body is None:
            continue
        wrapper = body.get("outcome") if isinstance(body, dict) else None
        outcome = None
        if isinstance(wrapper, dict):
            outcome = next(
                (o for o in ProposalOutcome if wrapper.get(o.value) is not None), None
            )
        return proposal_state, outcome
    return ProposalState.UNSPECIFIED, None


def parse_proposal(message: Dict[str, Any]) -> ProposalRecord:
    """Parse a ProposalDataResponse or ProposalListResponse"""
    message_name = "ProposalDataResponse"
    proposal = _submessage(message, "proposal", message_name)
    state, outcome = _parse_proposal_state(_submessage(message, "state", message_name))
    return ProposalRecord(
        proposal_id=_int(proposal, "id"),
        title=_str(proposal, "title"),
        description=_str(proposal, "description"),
        state=state,
        outcome=outcome,
        start_block_height=_int(message, "start_block_height"),
        end_block_height=_int(message, "end_block_height"),
    )


def parse_vote(message: Dict[str, Any], proposal_id: int) -> VoteRecord:
    """Parse a ValidatorVotesResponse"""
    identity_key = IdentityKey.from_proto(
        _submessage(message, "identity_key", "ValidatorVotesResponse")
    )
    vote = _lookup(message, "vote")
    choice = None
    if isinstance(vote, dict):
        value = _lookup(vote, "vote")
        if value is None:
            choice = 0
        elif isinstance(value, int):
            choice = value
        else:
            choice = VOTE_CHOICES.get(str(value), 0)
    return VoteRecord(identity_key=identity_key, proposal_id=proposal_id, vote=choice)


def parse_sync_info(message: Dict[str, Any]) -> ChainHead:
    """Parse the sync info of a GetStatusResponse"""
    sync_info = _submessage(message, "sync_info", "GetStatusResponse")
    return ChainHead(
        height=_int(sync_info, "latest_block_height"),
        time=_timestamp(
            _lookup(sync_info, "latest_block_time"), "latest_block_time", "SyncInfo"
        ),
    )


def parse_block_header(message: Dict[str, Any]) -> BlockHeader:
    """Parse the header of a GetBlockByHeightResponse"""
    block = _submessage(message, "block", "GetBlockByHeightResponse")
    header = _submessage(block, "header", "Block")
    return BlockHeader(
        height=_int(header, "height"),
        time=_timestamp(_lookup(header, "time"), "time", "Header"),
    )


# ==================== CLIENT INTERFACE ====================


class ChainQueryClient(ABC):
    """
    Query interface to the native chain, grouped by domain.
    List-returning calls are drained into complete lists.
    """

    def __enter__(self) -> ChainQueryClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Release the underlying connection"""

    # ------- Staking -------

    @abstractmethod
    def validator_info(self, show_inactive: bool = True) -> List[ValidatorRecord]:
        """All known validators"""

    @abstractmethod
    def validator_uptime(self, identity_key: IdentityKey) -> UptimeRecord:
        """Uptime record of one validator"""

    # ------- App parameters -------

    @abstractmethod
    def app_parameters(self) -> ChainParameters:
        """Current chain parameters"""

    # ------- Governance -------

    @abstractmethod
    def proposal_data(self, proposal_id: int) -> ProposalRecord:
        """One proposal by id"""

    @abstractmethod
    def proposal_list(self, inactive: bool = True) -> List[ProposalRecord]:
        """All proposals, including finished ones when inactive is set"""

    @abstractmethod
    def validator_votes(self, proposal_id: int) -> List[VoteRecord]:
        """Every validator vote cast on a proposal"""

    # ------- Status / blocks -------

    @abstractmethod
    def chain_head(self) -> ChainHead:
        """Latest block height and time"""

    @abstractmethod
    def block_by_height(self, height: int) -> BlockHeader:
        """Header of the block at height"""


# ==================== PENUMBRA CLIENT ====================


class PenumbraQueryClient(ChainQueryClient):
    """
    Chain query client speaking proto3 JSON to a gRPC-JSON gateway
    in front of a Penumbra node. One instance serves one request.
    """

    def __init__(self, node_url: str, timeout: int = 30):
        """
        Initialize Penumbra query client

        Args:
            node_url: gateway base URL (e.g., https://grpc.example.zone)
            timeout: per-call timeout in seconds
        """
        self.node_url = node_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    def close(self) -> None:
        self.session.close()

    def _url(self, service: str, method: str) -> str:
        return f"{self.node_url}/{service}/{method}"

    def _call(self, service: str, method: str, body: Optional[Dict] = None) -> Dict[str, Any]:
        """Unary call"""
        url = self._url(service, method)
        try:
            response = self.session.post(url, json=body or {}, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Query failed: {url} - {e}")
            raise BackendUnreachable(f"{service}/{method} failed: {e}") from e
        except ValueError as e:
            logger.error(f"Undecodable response: {url} - {e}")
            raise BackendUnreachable(f"{service}/{method} returned invalid JSON") from e

    def _stream(self, service: str, method: str, body: Optional[Dict] = None) -> List[Dict[str, Any]]:
        """Server-streaming call, drained into a list"""
        url = self._url(service, method)
        try:
            response = self.session.post(
                url, json=body or {}, timeout=self.timeout, stream=True
            )
            with response:
                response.raise_for_status()
                return list(self._iter_messages(service, method, response))
        except requests.exceptions.RequestException as e:
            logger.error(f"Stream failed: {url} - {e}")
            raise BackendUnreachable(f"{service}/{method} failed: {e}") from e

    @staticmethod
    def _iter_messages(service: str, method: str, response) -> Iterator[Dict[str, Any]]:
        for line in response.iter_lines():
            if not line:
                continue
            try:
                message = json.loads(line)
            except ValueError as e:
                raise BackendUnreachable(
                    f"{service}/{method} returned invalid JSON"
                ) from e
            if "error" in message:
                error = message["error"]
                detail = error.get("message", error) if isinstance(error, dict) else error
                raise BackendUnreachable(f"{service}/{method} failed: {detail}")
            yield message.get("result", message)

    # ==================== STAKING ====================

    def validator_info(self, show_inactive: bool = True) -> List[ValidatorRecord]:
        messages = self._stream(
            STAKE_SERVICE, "ValidatorInfo", {"showInactive": show_inactive}
        )
        return [parse_validator_info(m) for m in messages]

    def validator_uptime(self, identity_key: IdentityKey) -> UptimeRecord:
        data = self._call(
            STAKE_SERVICE, "ValidatorUptime", {"identityKey": identity_key.to_proto()}
        )
        return parse_uptime(data, identity_key)

    # ==================== APP PARAMETERS ====================

    def app_parameters(self) -> ChainParameters:
        return parse_app_parameters(self._call(APP_SERVICE, "AppParameters"))

    # ==================== GOVERNANCE ====================

    def proposal_data(self, proposal_id: int) -> ProposalRecord:
        data = self._call(
            GOVERNANCE_SERVICE, "ProposalData", {"proposalId": str(proposal_id)}
        )
        return parse_proposal(data)

    def proposal_list(self, inactive: bool = True) -> List[ProposalRecord]:
        messages = self._stream(GOVERNANCE_SERVICE, "ProposalList", {"inactive": inactive})
        return [parse_proposal(m) for m in messages]

    def validator_votes(self, proposal_id: int) -> List[VoteRecord]:
        messages = self._stream(
            GOVERNANCE_SERVICE, "ValidatorVotes", {"proposalId": str(proposal_id)}
        )
        return [parse_vote(m, proposal_id) for m in messages]

    # ==================== STATUS / BLOCKS ====================

    def chain_head(self) -> ChainHead:
        return parse_sync_info(self._call(TENDERMINT_PROXY_SERVICE, "GetStatus"))

    def block_by_height(self, height: int) -> BlockHeader:
        data = self._call(
            TENDERMINT_PROXY_SERVICE, "GetBlockByHeight", {"height": str(height)}
        )
        return parse_block_header(data)
