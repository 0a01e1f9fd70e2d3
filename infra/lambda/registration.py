import base64
import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

TABLE_ENV_VAR = "USERS_TABLE_NAME"
STATUS_ACTIVE = "active"
CREATED_AT_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Client timeouts in seconds. A write is only started when both fit before
# the Lambda deadline, plus some slack for building the response.
CONNECT_TIMEOUT = 2
READ_TIMEOUT = 5
DEADLINE_MARGIN_MS = (CONNECT_TIMEOUT + READ_TIMEOUT) * 1000 + 500

# DynamoDB numbers carry at most 38 significant digits.
MAX_NUMBER_DIGITS = 38


class RegistrationError(Exception):
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationError(RegistrationError):
    status_code = 400


class ConfigurationError(RegistrationError):
    pass


class PersistenceError(RegistrationError):
    pass


def _string_field(payload, field):
    value = payload.get(field)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    return value


def _age_field(payload):
    value = payload.get("age")
    if value is None:
        return None
    # bool is an int subclass; JSON true/false is not an age
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("age must be an integer")
    if len(str(abs(value))) > MAX_NUMBER_DIGITS:
        raise ValidationError("age must be an integer")
    return value


def _event_payload(event):
    if "body" not in event:
        return event

    body = event["body"]
    if body is None or body == "":
        return {}
    if isinstance(body, dict):
        return body
    try:
        if event.get("isBase64Encoded"):
            body = base64.b64decode(body).decode("utf-8")
        payload = json.loads(body)
    except (ValueError, TypeError) as exc:
        raise ValidationError("invalid request body") from exc
    if not isinstance(payload, dict):
        raise ValidationError("invalid request body")
    return payload


@dataclass(frozen=True)
class RegistrationRequest:
    name: str = ""
    phone_number: str = ""
    email: str = ""
    age: Optional[int] = None

    @classmethod
    def from_event(cls, event) -> "RegistrationRequest":
        """Read a request from a direct invocation payload or an API Gateway proxy event."""
        if not isinstance(event, dict):
            raise ValidationError("invalid request body")
        payload = _event_payload(event)
        return cls(
            name=_string_field(payload, "name"),
            phone_number=_string_field(payload, "phone_number"),
            email=_string_field(payload, "email"),
            age=_age_field(payload),
        )

    def validate(self):
        if not self.name:
            raise ValidationError("name is required")
        if not self.phone_number:
            raise ValidationError("phone_number is required")


@dataclass(frozen=True)
class UserRecord:
    id: str
    name: str
    phone_number: str
    status: str
    created_at: str
    email: Optional[str] = None
    age: Optional[int] = None

    def to_dict(self):
        user = {
            "id": self.id,
            "name": self.name,
            "phone_number": self.phone_number,
        }
        if self.email:
            user["email"] = self.email
        if self.age is not None and self.age > 0:
            user["age"] = self.age
        user["status"] = self.status
        user["created_at"] = self.created_at
        return user

    def to_item(self):
        # The boto3 resource layer serializes str as S and int as N.
        return self.to_dict()


def build_user(request, now=None):
    if now is None:
        now = datetime.now(timezone.utc)
    return UserRecord(
        id=str(uuid.uuid4()),
        name=request.name,
        phone_number=request.phone_number,
        email=request.email or None,
        age=request.age if request.age is not None and request.age > 0 else None,
        status=STATUS_ACTIVE,
        created_at=now.astimezone(timezone.utc).strftime(CREATED_AT_FORMAT),
    )


def table_name_from_env(environ):
    table_name = environ.get(TABLE_ENV_VAR, "")
    if not table_name:
        raise ConfigurationError(f"{TABLE_ENV_VAR} environment variable not set")
    return table_name


@dataclass(frozen=True)
class Registrar:
    """Writes user records through a DynamoDB resource shared by every invocation."""

    dynamodb: object

    def register(self, user, table_name, context=None):
        remaining_ms = getattr(context, "get_remaining_time_in_millis", None)
        if remaining_ms is not None and remaining_ms() < DEADLINE_MARGIN_MS:
            raise PersistenceError("failed to save user: invocation deadline exceeded")

        table = self.dynamodb.Table(table_name)
        try:
            table.put_item(Item=user.to_item())
        except (ClientError, BotoCoreError) as exc:
            raise PersistenceError(f"failed to save user: {exc}") from exc
        return user
