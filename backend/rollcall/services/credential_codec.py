"""Credential payload encoding and decoding."""
import hashlib
import json
from dataclasses import dataclass

from rollcall.utils.errors import InvalidInput
from rollcall.utils.validators import Validator

PAYLOAD_VERSION = 1
REQUIRED_FIELDS = ('v', 'session_id', 'token', 'subject_ref', 'hash')


@dataclass(frozen=True)
class DecodedCredential:
    """Fields extracted from a scanned payload."""
    session_id: str
    token: str
    subject_ref: str


def _digest(session_id: str, token: str, subject_ref: str) -> str:
    data_string = f"{PAYLOAD_VERSION}{session_id}{token}{subject_ref}"
    return hashlib.sha256(data_string.encode()).hexdigest()[:16]


def encode_credential(session_id: str, token: str, subject_ref: str) -> str:
    """
    Encode a credential into the text rendered by the display.
    The same input always produces the same payload.
    """
    payload = {
        'v': PAYLOAD_VERSION,
        'session_id': session_id,
        'token': token,
        'subject_ref': subject_ref,
        'hash': _digest(session_id, token, subject_ref),
    }
    return json.dumps(payload, separators=(',', ':'), sort_keys=True)


def decode_credential(payload: str) -> DecodedCredential:
    """
    Decode a scanned payload.
    Raises InvalidInput when the payload is malformed or was altered.
    """
    if not isinstance(payload, str) or not payload:
        raise InvalidInput("Credential payload is required")

    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        raise InvalidInput("Invalid credential format")

    if not isinstance(data, dict):
        raise InvalidInput("Invalid credential format")

    for field in REQUIRED_FIELDS:
        if field not in data:
            raise InvalidInput(f"Missing field: {field}")

    if data['v'] != PAYLOAD_VERSION:
        raise InvalidInput(f"Unsupported credential version: {data['v']}")

    session_id = Validator.require_identifier(data['session_id'], 'session_id')
    token = Validator.require_identifier(data['token'], 'token')
    subject_ref = Validator.require_identifier(data['subject_ref'], 'subject_ref')

    if data['hash'] != _digest(session_id, token, subject_ref):
        raise InvalidInput("Credential checksum mismatch")

    return DecodedCredential(session_id=session_id, token=token, subject_ref=subject_ref)
