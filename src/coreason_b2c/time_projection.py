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
Projection of token lifetimes onto local wall-clock strings for display.
"""

from datetime import datetime, tzinfo

from coreason_b2c.exceptions import ExchangeFailedError
from coreason_b2c.models import TokenSet, ValidityWindow

DISPLAY_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_epoch(epoch: int, tz: tzinfo | None = None) -> str:
    """
    Renders epoch seconds as `YYYY-MM-DD HH:MM:SS`.

    Args:
        epoch: Seconds since the Unix epoch.
        tz: Target timezone. Defaults to the host's local timezone.
    """
    # Numeric-only format, so the result does not depend on the locale
    return datetime.fromtimestamp(int(epoch), tz=tz).strftime(DISPLAY_FORMAT)


def project_validity(token_set: TokenSet, tz: tzinfo | None = None) -> ValidityWindow:
    """
    Computes when the access and refresh tokens stop being valid, counted from `not_before`.

    Raises:
        ExchangeFailedError: If a lifetime lands outside the representable date range.
    """
    not_before = token_set.not_before
    try:
        refresh_valid_until = None
        if token_set.refresh_token_expires_in is not None:
            refresh_valid_until = format_epoch(not_before + token_set.refresh_token_expires_in, tz)

        return ValidityWindow(
            valid_from=format_epoch(not_before, tz),
            valid_until=format_epoch(not_before + token_set.expires_in, tz),
            refresh_valid_until=refresh_valid_until,
        )
    except (OverflowError, OSError, ValueError) as e:
        raise ExchangeFailedError(f"Token lifetimes are out of range: {e}") from e
