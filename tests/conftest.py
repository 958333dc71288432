#
# Copyright 2019 FMR LLC <opensource@fidelity.com>
#
# SPDX-License-Identifier: MIT
#

# pylint: disable=redefined-outer-name,missing-docstring

import base64
from datetime import datetime, timezone

import pytest

from credbroker.credfile import CredentialFileStore
from credbroker.dispatch import SessionProviderDispatcher
from credbroker.registry import SessionRegistry

SAML_PROVIDER = "arn:aws:iam::111111111111:saml-provider/ADFS"
IDP_URL = "https://adfs.example.com/adfs/ls/IdpInitiatedSignOn.aspx"

SAML_TEMPLATE = """<?xml version="1.0"?>
<samlp:Response xmlns:samlp="urn:oasis:names:tc:SAML:2.0:protocol">
  <saml:Assertion xmlns:saml="urn:oasis:names:tc:SAML:2.0:assertion">
    <saml:AttributeStatement>
      <saml:Attribute Name="https://aws.amazon.com/SAML/Attributes/Role">
        {values}
      </saml:Attribute>
    </saml:AttributeStatement>
  </saml:Assertion>
</samlp:Response>
"""


def saml_html(*role_arns):
    """Returns an IdP response page with an assertion granting `role_arns`."""
    values = "\n".join(
        f"<saml:AttributeValue>{arn},{SAML_PROVIDER}</saml:AttributeValue>"
        for arn in role_arns
    )
    assertion = base64.b64encode(SAML_TEMPLATE.format(values=values).encode())
    return (
        '<html><body><form method="post">'
        f'<input type="hidden" name="SAMLResponse" value="{assertion.decode()}"/>'
        "</form></body></html>"
    )


def sts_response(access_key_id, secret="secret", token="token"):
    return {
        "Credentials": {
            "AccessKeyId": access_key_id,
            "SecretAccessKey": secret,
            "SessionToken": token,
            "Expiration": datetime(2030, 1, 1, tzinfo=timezone.utc),
        }
    }


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def store(tmp_path):
    return CredentialFileStore(tmp_path / "credentials")


@pytest.fixture
def dispatcher(registry, store):
    return SessionProviderDispatcher(registry, store)


@pytest.fixture
def mock_boto3(mocker):
    """Patches boto3 so every STS client, plain or from a Session, is `sts`."""
    boto3 = mocker.patch("credbroker.session.aws.boto3")
    sts = mocker.MagicMock(name="sts")
    boto3.client.return_value = sts
    boto3.Session.return_value.client.return_value = sts
    boto3.sts = sts
    return boto3


@pytest.fixture
def mock_idp(mocker):
    """Patches requests so the IdP returns an assertion granting Admin in prod."""
    session_cls = mocker.patch("credbroker.session.aws.requests.Session")
    http = session_cls.return_value.__enter__.return_value
    http.get.return_value = mocker.Mock(
        status_code=200, text=saml_html("arn:aws:iam::111111111111:role/Admin")
    )
    return http
