# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_webid

import pytest

from coreason_webid.exceptions import IdentityResolutionError
from coreason_webid.identity_mapper import WebIDClaimsMapper

WEB_ID = "https://alice.example/profile#me"


@pytest.fixture
def mapper() -> WebIDClaimsMapper:
    return WebIDClaimsMapper()


def test_webid_claim(mapper: WebIDClaimsMapper) -> None:
    assert mapper.identity_from({"sub": "opaque", "webid": WEB_ID}) == WEB_ID


def test_uri_subject(mapper: WebIDClaimsMapper) -> None:
    assert mapper.identity_from({"sub": WEB_ID, "iss": "https://idp.example"}) == WEB_ID


def test_invalid_webid_claim_falls_back_to_sub(mapper: WebIDClaimsMapper) -> None:
    assert mapper.identity_from({"webid": "not a uri", "sub": WEB_ID}) == WEB_ID


def test_extra_claims_ignored(mapper: WebIDClaimsMapper) -> None:
    assert mapper.identity_from({"sub": WEB_ID, "email": "alice@example.org", "groups": ["a"]}) == WEB_ID


def test_opaque_subject(mapper: WebIDClaimsMapper) -> None:
    with pytest.raises(IdentityResolutionError, match="Cannot determine WebID"):
        mapper.identity_from({"sub": "248289761001"})


def test_no_claims(mapper: WebIDClaimsMapper) -> None:
    with pytest.raises(IdentityResolutionError):
        mapper.identity_from({})


def test_malformed_claims(mapper: WebIDClaimsMapper) -> None:
    with pytest.raises(IdentityResolutionError, match="Malformed identity claims") as exc_info:
        mapper.identity_from({"sub": ["not", "a", "string"]})

    assert exc_info.value.cause is not None
    assert exc_info.value.status_code == 401
