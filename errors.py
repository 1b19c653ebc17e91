"""
Gateway error types
Each error knows the HTTP status and Cosmos-style error body it maps to
"""

from typing import Any, Dict


class GatewayError(Exception):
    """Base error for a request that cannot be served"""

    http_status = 500
    code = 13  # gRPC INTERNAL

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        """Error body in the shape the Cosmos SDK REST API returns"""
        return {"code": self.code, "message": self.message, "details": []}


class BackendUnreachable(GatewayError):
    """The node query service could not be reached or answered with an error"""

    http_status = 503
    code = 14  # UNAVAILABLE


class MalformedIdentity(GatewayError):
    """An identity key string failed to parse"""

    code = 3  # INVALID_ARGUMENT


class MissingField(GatewayError):
    """A native response omitted an expected sub-message"""

    def __init__(self, field_name: str, message_name: str):
        super().__init__(f"missing field '{field_name}' in {message_name}")
        self.field_name = field_name
        self.message_name = message_name


class InvalidConfiguration(GatewayError):
    """Chain parameters that cannot be translated (e.g. zero-length window)"""

    code = 9  # FAILED_PRECONDITION


class InsufficientHistory(GatewayError):
    """The chain is too young to sample an average block time"""

    code = 9


class VoterNotFound(GatewayError):
    """The voter did not vote on the proposal"""

    http_status = 400
    code = 3

    def __init__(self, voter: str, proposal_id: int):
        super().__init__(f"voter: {voter} not found for proposal: {proposal_id}")
        self.voter = voter
        self.proposal_id = proposal_id


class VoteMissingChoice(GatewayError):
    """The voter is listed for the proposal but no choice was recorded"""

    http_status = 400
    code = 3

    def __init__(self, voter: str, proposal_id: int):
        super().__init__(
            f"voter: {voter} has no vote option recorded for proposal: {proposal_id}"
        )
        self.voter = voter
        self.proposal_id = proposal_id
