"""
Penumbra Cosmos REST Gateway
Serves a subset of the Cosmos SDK REST API (staking, slashing, governance)
from a Penumbra node's native query services
"""

from __future__ import annotations

import argparse
import ipaddress
import logging
import time
from functools import partial
from typing import List, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS
from flasgger import Swagger
from werkzeug.exceptions import HTTPException

from config import config
from errors import GatewayError
from gateway_service import GatewayService
from penumbra_client import PenumbraQueryClient

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL),
    format=config.LOG_FORMAT
)
logger = logging.getLogger(__name__)


# ==================== FLASK APP ====================

app = Flask(__name__)
CORS(app, origins=config.CORS_ORIGINS)

# ==================== SWAGGER CONFIGURATION ====================

swagger_config = {
    "headers": [],
    "specs": [
        {
            "endpoint": 'apispec',
            "route": '/apispec.json',
            "rule_filter": lambda rule: True,
            "model_filter": lambda tag: True,
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/api/docs"
}

swagger_template = {
    "info": {
        "title": "Penumbra Cosmos REST Gateway",
        "description": "Cosmos SDK compatible staking, slashing and governance queries served from a Penumbra node",
        "version": "1.0.0"
    },
    "basePath": "/",
    "schemes": ["https", "http"],
    "tags": [
        {"name": "Health", "description": "Health check endpoints"},
        {"name": "Staking", "description": "cosmos.staking.v1beta1 queries"},
        {"name": "Slashing", "description": "cosmos.slashing.v1beta1 queries"},
        {"name": "Governance", "description": "cosmos.gov.v1beta1 queries"}
    ]
}

swagger = Swagger(app, config=swagger_config, template=swagger_template)

NODE_URL = config.NODE_URL

service = GatewayService(
    partial(PenumbraQueryClient, NODE_URL, timeout=config.REQUEST_TIMEOUT)
)


# ==================== ERROR HANDLERS ====================

def _error_body(code: int, message: str):
    return jsonify({"code": code, "message": message, "details": []})


@app.errorhandler(GatewayError)
def handle_gateway_error(error: GatewayError):
    if error.http_status >= 500:
        logger.error(f"{request.path} failed: {error.message}")
    return jsonify(error.to_payload()), error.http_status


@app.errorhandler(404)
def handle_not_found(error):
    return _error_body(5, f"Not Found: {request.path}"), 404


@app.errorhandler(405)
def handle_method_not_allowed(error):
    return _error_body(12, f"Method Not Allowed: {request.method}"), 405


@app.errorhandler(Exception)
def handle_unexpected_error(error):
    if isinstance(error, HTTPException):
        return error
    logger.exception(f"Unhandled error serving {request.path}")
    return _error_body(13, f"internal error: {error}"), 500


# ==================== STAKING ENDPOINTS ====================

@app.route("/cosmos/staking/v1beta1/validators", methods=["GET"])
def validators_endpoint():
    """
    Get validators
    ---
    tags:
      - Staking
    parameters:
      - name: status
        in: query
        type: string
        enum: ["BOND_STATUS_BONDED", "BOND_STATUS_UNBONDING", "BOND_STATUS_UNBONDED"]
        description: Only return validators with this bond status
    responses:
      200:
        description: Validator list
        schema:
          type: object
          properties:
            validators:
              type: array
              items:
                type: object
                properties:
                  operator_address:
                    type: string
                    description: Validator identity key (penumbravalid1...)
                  consensus_pubkey:
                    type: object
                    description: Ed25519 consensus key
                  jailed:
                    type: boolean
                  status:
                    type: string
                  tokens:
                    type: string
                    description: Voting power
                  delegator_shares:
                    type: string
                    description: Voting power
                  description:
                    type: object
            pagination:
              type: object
              properties:
                next_key:
                  type: string
                total:
                  type: string
      503:
        description: Node unreachable
    """
    status = request.args.get("status")
    return jsonify(service.get_validators(status))


@app.route("/cosmos/staking/v1beta1/params", methods=["GET"])
def staking_params_endpoint():
    """
    Get staking parameters
    ---
    tags:
      - Staking
    responses:
      200:
        description: Staking parameters
        schema:
          type: object
          properties:
            params:
              type: object
              properties:
                unbonding_time:
                  type: string
                max_validators:
                  type: integer
                  description: Active validator limit
                max_entries:
                  type: integer
                historical_entries:
                  type: integer
                bond_denom:
                  type: string
      503:
        description: Node unreachable
    """
    return jsonify(service.get_staking_params())


# ==================== SLASHING ENDPOINTS ====================

@app.route("/cosmos/slashing/v1beta1/params", methods=["GET"])
def slashing_params_endpoint():
    """
    Get slashing parameters
    ---
    tags:
      - Slashing
    responses:
      200:
        description: Slashing parameters
        schema:
          type: object
          properties:
            params:
              type: object
              properties:
                signed_blocks_window:
                  type: string
                min_signed_per_window:
                  type: string
                  description: 1 - missed_blocks_maximum / signed_blocks_window
                downtime_jail_duration:
                  type: string
                slash_fraction_double_sign:
                  type: string
                slash_fraction_downtime:
                  type: string
      500:
        description: Signing window is zero
      503:
        description: Node unreachable
    """
    return jsonify(service.get_slashing_params())


@app.route("/cosmos/slashing/v1beta1/signing_infos/<identity_key>", methods=["GET"])
def signing_info_endpoint(identity_key):
    """
    Get validator signing info
    ---
    tags:
      - Slashing
    parameters:
      - name: identity_key
        in: path
        type: string
        required: true
        description: Validator identity key (penumbravalid1...)
    responses:
      200:
        description: Signing info
        schema:
          type: object
          properties:
            val_signing_info:
              type: object
              properties:
                address:
                  type: string
                start_height:
                  type: string
                index_offset:
                  type: string
                jailed_until:
                  type: string
                tombstoned:
                  type: boolean
                missed_blocks_counter:
                  type: string
      500:
        description: Malformed identity key
      503:
        description: Node unreachable
    """
    return jsonify(service.get_signing_info(identity_key))


# ==================== GOVERNANCE ENDPOINTS ====================

@app.route("/cosmos/gov/v1beta1/proposals", methods=["GET"])
def proposals_endpoint():
    """
    Get governance proposals
    ---
    tags:
      - Governance
    responses:
      200:
        description: All proposals, including finished ones
        schema:
          type: object
          properties:
            proposals:
              type: array
              items:
                type: object
                properties:
                  proposal_id:
                    type: string
                  content:
                    type: object
                  status:
                    type: string
                  voting_start_time:
                    type: string
                    description: Estimated from the average block time
                  voting_end_time:
                    type: string
                    description: Estimated from the average block time
            pagination:
              type: object
      500:
        description: Chain too young to estimate block time
      503:
        description: Node unreachable
    """
    return jsonify(service.get_proposals())


@app.route("/cosmos/gov/v1beta1/proposals/<int:proposal_id>", methods=["GET"])
def proposal_endpoint(proposal_id):
    """
    Get single proposal
    ---
    tags:
      - Governance
    parameters:
      - name: proposal_id
        in: path
        type: integer
        required: true
        description: Proposal ID
    responses:
      200:
        description: Proposal details
        schema:
          type: object
          properties:
            proposal:
              type: object
      503:
        description: Node unreachable
    """
    return jsonify(service.get_proposal(proposal_id))


@app.route("/cosmos/gov/v1beta1/proposals/<int:proposal_id>/votes/<voter>", methods=["GET"])
def proposal_vote_endpoint(proposal_id, voter):
    """
    Get a validator's vote on a proposal
    ---
    tags:
      - Governance
    parameters:
      - name: proposal_id
        in: path
        type: integer
        required: true
        description: Proposal ID
      - name: voter
        in: path
        type: string
        required: true
        description: Validator identity key (penumbravalid1...)
    responses:
      200:
        description: Vote
        schema:
          type: object
          properties:
            vote:
              type: object
              properties:
                proposal_id:
                  type: string
                voter:
                  type: string
                option:
                  type: string
                options:
                  type: array
                  items:
                    type: object
      400:
        description: Voter did not vote on the proposal
      503:
        description: Node unreachable
    """
    return jsonify(service.get_vote(proposal_id, voter))


# ==================== HEALTH CHECK ====================

@app.route("/health", methods=["GET"])
def health_check():
    """
    Health check
    ---
    tags:
      - Health
    responses:
      200:
        description: Health status
        schema:
          type: object
          properties:
            status:
              type: string
              description: Overall health status (healthy/degraded)
            node:
              type: object
              properties:
                reachable:
                  type: boolean
                latest_block_height:
                  type: integer
            timestamp:
              type: number
    """
    node = {"reachable": False, "url": NODE_URL}
    try:
        node.update(service.get_node_status())
        node["reachable"] = True
    except GatewayError as e:
        logger.warning(f"Node health degraded: {e}")

    return jsonify({
        "status": "healthy" if node["reachable"] else "degraded",
        "gateway": "running",
        "node": node,
        "timestamp": time.time()
    }), 200


# ==================== INFO ENDPOINT ====================

@app.route("/", methods=["GET"])
def gateway_info():
    """
    Gateway information
    ---
    tags:
      - Health
    responses:
      200:
        description: Gateway service information
    """
    return jsonify({
        "name": "Penumbra Cosmos REST Gateway",
        "version": "1.0.0",
        "endpoints": {
            "staking": "/cosmos/staking/v1beta1/*",
            "slashing": "/cosmos/slashing/v1beta1/*",
            "governance": "/cosmos/gov/v1beta1/*",
            "health": "/health",
            "swagger_docs": "/api/docs",
            "openapi_spec": "/apispec.json"
        },
        "node_url": NODE_URL,
        "timestamp": time.time()
    })


# ==================== ENTRY POINT ====================

def _ip_address(value: str) -> str:
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid IP address format: {value}")


def _port(value: str) -> int:
    port = int(value)
    if port < 1 or port > 65535:
        raise argparse.ArgumentTypeError("port must be between 1 and 65535")
    return port


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Cosmos SDK REST gateway for a Penumbra node"
    )
    parser.add_argument("-n", "--node", default=config.NODE_URL,
                        help="node query endpoint (gRPC-JSON gateway URL)")
    parser.add_argument("-p", "--port", type=_port, default=config.GATEWAY_PORT,
                        help="listening port")
    parser.add_argument("-b", "--bind", type=_ip_address, default=config.GATEWAY_HOST,
                        help="bind address")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    global NODE_URL, service

    args = parse_args(argv)
    NODE_URL = args.node.rstrip("/")
    service = GatewayService(
        partial(PenumbraQueryClient, NODE_URL, timeout=config.REQUEST_TIMEOUT)
    )

    logger.info("Starting Penumbra Cosmos REST Gateway")
    logger.info(f"Node URL: {NODE_URL}")
    logger.info(f"Listening on {args.bind}:{args.port}")

    app.run(
        host=args.bind,
        port=args.port,
        debug=config.DEBUG,
        threaded=True
    )


if __name__ == "__main__":
    main()
