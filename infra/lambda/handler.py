import json
import logging
import os

import boto3
from botocore.config import Config

from registration import (
    CONNECT_TIMEOUT,
    READ_TIMEOUT,
    Registrar,
    RegistrationError,
    RegistrationRequest,
    build_user,
    table_name_from_env,
)


def _log_level(name):
    level = logging.getLevelName(name.strip().upper())
    # unknown names come back as "Level <NAME>"
    return level if isinstance(level, int) else logging.INFO


logger = logging.getLogger(__name__)
logger.setLevel(_log_level(os.environ.get("LOG_LEVEL", "INFO")))

JSON_HEADERS = {"Content-Type": "application/json"}

# One attempt per invocation; the registrar only starts it when these timeouts fit.
CLIENT_CONFIG = Config(
    connect_timeout=CONNECT_TIMEOUT,
    read_timeout=READ_TIMEOUT,
    retries={"total_max_attempts": 1},
)

dynamodb = boto3.resource(
    "dynamodb",
    endpoint_url=os.environ.get("DYNAMODB_ENDPOINT_URL") or None,
    config=CLIENT_CONFIG,
)
registrar = Registrar(dynamodb)


def _response(status_code, payload):
    return {
        "statusCode": status_code,
        "headers": dict(JSON_HEADERS),
        "body": json.dumps(payload, separators=(",", ":"), ensure_ascii=False),
    }


def error_response(status_code, message):
    return _response(status_code, {"error": message})


def lambda_handler(event, context):
    request_id = getattr(context, "aws_request_id", None)

    try:
        request = RegistrationRequest.from_event(event)
        request.validate()
        user = build_user(request)
        table_name = table_name_from_env(os.environ)
        registrar.register(user, table_name, context=context)
    except RegistrationError as exc:
        if exc.status_code >= 500:
            logger.error("registration failed request_id=%s: %s", request_id, exc.message)
        else:
            logger.warning("registration rejected request_id=%s: %s", request_id, exc.message)
        return error_response(exc.status_code, exc.message)

    logger.info("user registered id=%s request_id=%s", user.id, request_id)
    return _response(201, {"message": "User created successfully", "user": user.to_dict()})
