# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

"""
ProfileDecoder component for the `profile_info` bundle returned by the token endpoint.
"""

import base64
import binascii

from pydantic import ValidationError

from coreason_b2c.exceptions import ProfileDecodeError
from coreason_b2c.models import UserProfile


def decode_profile(profile_info: str | None) -> UserProfile:
    """
    Decodes `profile_info`: standard (not URL-safe) base64 of UTF-8 JSON.
    B2C sometimes strips the '=' padding, so it is restored before strict decoding.

    Args:
        profile_info: The raw field from the token response.

    Returns:
        UserProfile: The decoded profile.

    Raises:
        ProfileDecodeError: If the value is missing, not base64, not UTF-8 JSON,
            or has no `name`.
    """
    if not profile_info:
        raise ProfileDecodeError("The token response has no profile_info.")

    encoded = profile_info.strip()
    encoded += "=" * (-len(encoded) % 4)
    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ProfileDecodeError(f"profile_info is not valid base64: {e}") from e

    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ProfileDecodeError("profile_info is not UTF-8.") from e

    try:
        return UserProfile.model_validate_json(text)
    except ValidationError as e:
        raise ProfileDecodeError(f"profile_info is not a valid profile: {e.error_count()} error(s)") from e
