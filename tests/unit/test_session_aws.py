#
# Copyright 2019 FMR LLC <opensource@fidelity.com>
#
# SPDX-License-Identifier: MIT
#

# pylint: disable=redefined-outer-name,missing-docstring

import pytest
import requests
from botocore.exceptions import ClientError
from requests.auth import HTTPBasicAuth

from conftest import IDP_URL, SAML_PROVIDER, saml_html, sts_response
from credbroker.account import AccountType
from credbroker.errors import (
    CredentialIssuanceError,
    CyclicTrustChain,
    FederationError,
    InvalidAccountRequest,
    ParentSessionNotFound,
    RoleAssumptionError,
)
from credbroker.session.aws import (
    MAX_CHAIN_DEPTH,
    FederatedGenerator,
    role_session_name,
)


def client_error(code="AccessDenied", message="not authorized", op="AssumeRole"):
    return ClientError({"Error": {"Code": code, "Message": message}}, op)


def federated_request(**kwargs):
    request = {
        "account_name": "prod",
        "region": "us-east-1",
        "account_number": "111111111111",
        "idp_arn": SAML_PROVIDER,
        "idp_url": IDP_URL,
        "roles": ["Admin"],
    }
    request.update(kwargs)
    return request


def truster_request(parent, **kwargs):
    request = {
        "account_name": "prod-readonly",
        "region": "us-east-1",
        "account_number": "222222222222",
        "role_arn": "arn:aws:iam::222222222222:role/ReadOnly",
        "parent_session_id": parent.session_id,
    }
    request.update(kwargs)
    return request


@pytest.fixture
def direct(dispatcher):
    return dispatcher.get_service(AccountType.DIRECT)


@pytest.fixture
def federated(dispatcher):
    return dispatcher.get_service(AccountType.FEDERATED)


@pytest.fixture
def truster(dispatcher):
    return dispatcher.get_service(AccountType.TRUSTER)


@pytest.fixture
def prod(federated, registry):
    return federated.create(federated_request(), registry.add_profile("prod"))


@pytest.fixture
def readonly(truster, registry, prod):
    return truster.create(truster_request(prod), registry.add_profile("readonly"))


# DirectGenerator


@pytest.fixture
def dev(direct, registry):
    request = {
        "account_name": "dev",
        "region": "eu-west-1",
        "account_number": "333333333333",
        "source_profile": "dev-long-lived",
    }
    return direct.create(request, registry.add_profile("dev"))


def test_direct_generate_credentials(direct, dev, registry, mock_boto3):
    mock_boto3.sts.get_session_token.return_value = sts_response(" ASIADEV ")
    registry.settings["session_duration"] = 900

    creds = direct.generate_credentials(dev.session_id)

    mock_boto3.Session.assert_called_once_with(profile_name="dev-long-lived")
    mock_boto3.Session.return_value.client.assert_called_once_with(
        "sts", region_name="eu-west-1"
    )
    mock_boto3.sts.get_session_token.assert_called_once_with(DurationSeconds=900)
    assert creds.access_key_id == "ASIADEV"
    assert creds.region == "eu-west-1"


def test_direct_only_reads_own_session(direct, dev, registry, mock_boto3, mocker):
    mock_boto3.sts.get_session_token.return_value = sts_response("ASIADEV")
    spy = mocker.spy(registry, "get")

    direct.generate_credentials(dev.session_id)

    assert [c.args for c in spy.call_args_list] == [(dev.session_id,)]


def test_direct_client_error(direct, dev, mock_boto3):
    mock_boto3.sts.get_session_token.side_effect = client_error(
        "InvalidClientTokenId", "bad key", "GetSessionToken"
    )

    with pytest.raises(CredentialIssuanceError) as e:
        direct.generate_credentials(dev.session_id)

    assert "bad key" in str(e.value)
    assert e.value.session_id == dev.session_id
    assert e.value.account_name == "dev"


def test_direct_start_writes_profile(direct, dev, store, mock_boto3):
    mock_boto3.sts.get_session_token.return_value = sts_response("ASIADEV", "s", "t")
    direct.start(dev.session_id)

    assert dev.active
    assert store.read()["dev"] == {
        "aws_access_key_id": "ASIADEV",
        "aws_secret_access_key": "s",
        "aws_session_token": "t",
        "region": "eu-west-1",
    }


# FederatedGenerator


def test_federated_create(prod):
    account = prod.account
    assert account.type == AccountType.FEDERATED
    assert account.role.name == "Admin"
    assert account.role.role_arn == "arn:aws:iam::111111111111:role/Admin"


def test_federated_generate_credentials(
    federated, prod, registry, mock_boto3, mock_idp
):
    mock_boto3.sts.assume_role_with_saml.return_value = sts_response("ASIAPROD")
    registry.settings["saml_role_session_duration"] = 1800

    creds = federated.generate_credentials(prod.session_id)

    mock_idp.get.assert_called_once_with(IDP_URL, verify=True)
    mock_boto3.client.assert_called_once_with("sts", region_name="us-east-1")
    kwargs = mock_boto3.sts.assume_role_with_saml.call_args.kwargs
    assert kwargs["RoleArn"] == "arn:aws:iam::111111111111:role/Admin"
    assert kwargs["PrincipalArn"] == SAML_PROVIDER
    assert kwargs["DurationSeconds"] == 1800
    assert kwargs["SAMLAssertion"]
    assert creds.access_key_id == "ASIAPROD"


def test_federated_selected_role(federated, registry, mock_boto3, mock_idp, mocker):
    mock_idp.get.return_value = mocker.Mock(
        status_code=200, text=saml_html("arn:aws:iam::111111111111:role/Dev")
    )
    mock_boto3.sts.assume_role_with_saml.return_value = sts_response("ASIAPROD")
    session = federated.create(
        federated_request(roles=["Admin", "Dev"], selected_role="Dev"),
        registry.default_profile_id,
    )

    federated.generate_credentials(session.session_id)

    kwargs = mock_boto3.sts.assume_role_with_saml.call_args.kwargs
    assert kwargs["RoleArn"] == "arn:aws:iam::111111111111:role/Dev"


def test_federated_unauthorized(federated, prod, mock_boto3, mock_idp, mocker):
    mock_idp.get.return_value = mocker.Mock(status_code=401, text="")

    with pytest.raises(FederationError) as e:
        federated.generate_credentials(prod.session_id)

    assert e.value.session_id == prod.session_id
    assert e.value.account_name == "prod"
    mock_boto3.sts.assume_role_with_saml.assert_not_called()


def test_federated_idp_unreachable(federated, prod, mock_boto3, mock_idp):
    mock_idp.get.side_effect = requests.ConnectionError("connection refused")

    with pytest.raises(FederationError):
        federated.generate_credentials(prod.session_id)
    mock_boto3.sts.assume_role_with_saml.assert_not_called()


def test_federated_no_assertion(federated, prod, mock_boto3, mock_idp, mocker):
    mock_idp.get.return_value = mocker.Mock(status_code=200, text="<html></html>")

    with pytest.raises(FederationError):
        federated.generate_credentials(prod.session_id)


def test_federated_role_not_in_assertion(
    federated, prod, mock_boto3, mock_idp, mocker
):
    mock_idp.get.return_value = mocker.Mock(
        status_code=200, text=saml_html("arn:aws:iam::111111111111:role/Other")
    )

    with pytest.raises(FederationError) as e:
        federated.generate_credentials(prod.session_id)

    assert "Admin" in str(e.value)
    mock_boto3.sts.assume_role_with_saml.assert_not_called()


def test_federated_sts_error(federated, prod, mock_boto3, mock_idp):
    mock_boto3.sts.assume_role_with_saml.side_effect = client_error(
        op="AssumeRoleWithSAML"
    )

    with pytest.raises(FederationError) as e:
        federated.generate_credentials(prod.session_id)
    assert "not authorized" in str(e.value)


def test_federated_post_form(registry, store, mock_boto3, mocker):
    auth = HTTPBasicAuth("alice", "hunter2")
    generator = FederatedGenerator(registry, store, auth=auth, http_method="POST")
    session_cls = mocker.patch("credbroker.session.aws.requests.Session")
    http = session_cls.return_value.__enter__.return_value
    http.post.return_value = mocker.Mock(
        status_code=200, text=saml_html("arn:aws:iam::111111111111:role/Admin")
    )
    mock_boto3.sts.assume_role_with_saml.return_value = sts_response("ASIAPROD")
    session = generator.create(federated_request(), registry.default_profile_id)

    generator.generate_credentials(session.session_id)

    data = http.post.call_args.kwargs["data"]
    assert data["UserName"] == "alice"
    assert data["Password"] == "hunter2"


def test_federated_post_without_auth(registry, store, mock_boto3, mocker):
    generator = FederatedGenerator(registry, store, http_method="POST")
    session_cls = mocker.patch("credbroker.session.aws.requests.Session")
    session = generator.create(federated_request(), registry.default_profile_id)

    with pytest.raises(FederationError) as e:
        generator.generate_credentials(session.session_id)

    assert e.value.session_id == session.session_id
    assert e.value.account_name == "prod"
    session_cls.assert_not_called()
    mock_boto3.sts.assume_role_with_saml.assert_not_called()


def test_federated_duplicate_account_number(federated, prod, registry):
    with pytest.raises(InvalidAccountRequest):
        federated.create(
            federated_request(account_name="prod-2"), registry.default_profile_id
        )


def test_federated_update_keeps_own_account_number(federated, prod):
    federated.update(prod.session_id, federated_request(region="us-west-2"))
    assert prod.account.region == "us-west-2"


@pytest.mark.parametrize(
    "override",
    [
        {"idp_url": "adfs.example.com"},
        {"idp_arn": "arn:aws:iam::111111111111:role/ADFS"},
        {"roles": []},
        {"roles": "Admin"},
        {"selected_role": "Nope"},
    ],
)
def test_federated_invalid_request(federated, registry, override):
    with pytest.raises(InvalidAccountRequest):
        federated.create(federated_request(**override), registry.default_profile_id)
    assert registry.sessions() == []


# TrusterGenerator


def test_truster_create(readonly, prod):
    assert readonly.parent_session_id == prod.session_id
    assert readonly.account.parent == prod.account.account_id
    assert readonly.account.parent_role == "Admin"


def test_truster_create_unknown_parent(truster, registry, mocker):
    parent = mocker.Mock(session_id="missing")
    with pytest.raises(InvalidAccountRequest):
        truster.create(truster_request(parent), registry.default_profile_id)


def test_truster_create_subscription_parent(dispatcher, truster, registry):
    azure = dispatcher.get_service(AccountType.SUBSCRIPTION)
    sub = azure.create(
        {"account_name": "contoso", "subscription_id": "sub-1"},
        registry.default_profile_id,
    )

    with pytest.raises(InvalidAccountRequest):
        truster.create(truster_request(sub), registry.default_profile_id)


def test_truster_generate_credentials(truster, readonly, mock_boto3, mock_idp):
    mock_boto3.sts.assume_role_with_saml.return_value = sts_response(
        "ASIAPARENT", "parent-secret", "parent-token"
    )
    mock_boto3.sts.assume_role.return_value = sts_response("ASIACHILD")

    creds = truster.generate_credentials(readonly.session_id)

    mock_boto3.Session.assert_called_once_with(
        aws_access_key_id="ASIAPARENT",
        aws_secret_access_key="parent-secret",
        aws_session_token="parent-token",
    )
    mock_boto3.sts.assume_role.assert_called_once_with(
        RoleArn="arn:aws:iam::222222222222:role/ReadOnly",
        RoleSessionName="assumed-from-prod-for-prod-readonly",
    )
    assert creds.access_key_id == "ASIACHILD"


def test_truster_chain_of_trusters(
    truster, registry, readonly, mock_boto3, mock_idp
):
    audit = truster.create(
        truster_request(
            readonly,
            account_name="audit",
            role_arn="arn:aws:iam::444444444444:role/Audit",
        ),
        registry.add_profile("audit"),
    )
    mock_boto3.sts.assume_role_with_saml.return_value = sts_response("ASIA1")
    mock_boto3.sts.assume_role.side_effect = [
        sts_response("ASIA2"),
        sts_response("ASIA3"),
    ]

    creds = truster.generate_credentials(audit.session_id)

    calls = mock_boto3.sts.assume_role.call_args_list
    names = [c.kwargs["RoleSessionName"] for c in calls]
    assert names == [
        "assumed-from-prod-for-prod-readonly",
        "assumed-from-prod-readonly-for-audit",
    ]
    assert creds.access_key_id == "ASIA3"


def test_truster_parent_deleted(
    federated, truster, registry, prod, readonly, mock_boto3, mock_idp
):
    federated.delete(prod.session_id)

    with pytest.raises(ParentSessionNotFound) as e:
        truster.generate_credentials(readonly.session_id)

    assert e.value.account_name == "prod-readonly"
    mock_idp.get.assert_not_called()
    mock_boto3.sts.assume_role_with_saml.assert_not_called()
    mock_boto3.sts.assume_role.assert_not_called()


def test_truster_cycle(truster, registry, readonly, mock_boto3, mock_idp):
    other = truster.create(
        truster_request(readonly, account_name="other"), registry.default_profile_id
    )
    # Corrupt the workspace by pointing readonly at its own child.
    readonly.parent_session_id = other.session_id

    with pytest.raises(CyclicTrustChain) as e:
        truster.generate_credentials(other.session_id)

    assert e.value.chain[0] == other.session_id
    assert e.value.chain[-1] == other.session_id
    mock_boto3.sts.assume_role.assert_not_called()
    mock_idp.get.assert_not_called()


def test_truster_depth_limit(truster, registry, prod, mock_boto3, mock_idp):
    parent = prod
    for i in range(MAX_CHAIN_DEPTH):
        parent = truster.create(
            truster_request(parent, account_name=f"hop-{i}"),
            registry.default_profile_id,
        )

    with pytest.raises(CyclicTrustChain):
        truster.generate_credentials(parent.session_id)
    mock_boto3.sts.assume_role.assert_not_called()


def test_truster_max_depth_allowed(truster, registry, prod, mock_boto3, mock_idp):
    mock_boto3.sts.assume_role_with_saml.return_value = sts_response("ASIA0")
    mock_boto3.sts.assume_role.return_value = sts_response("ASIAN")
    parent = prod
    for i in range(MAX_CHAIN_DEPTH - 1):
        parent = truster.create(
            truster_request(parent, account_name=f"hop-{i}"),
            registry.default_profile_id,
        )

    truster.generate_credentials(parent.session_id)
    assert mock_boto3.sts.assume_role.call_count == MAX_CHAIN_DEPTH - 1


def test_truster_assume_role_denied(truster, readonly, mock_boto3, mock_idp):
    mock_boto3.sts.assume_role_with_saml.return_value = sts_response("ASIAPARENT")
    mock_boto3.sts.assume_role.side_effect = client_error()

    with pytest.raises(RoleAssumptionError) as e:
        truster.generate_credentials(readonly.session_id)

    assert "not authorized" in str(e.value)
    assert e.value.session_id == readonly.session_id


def test_truster_parent_failure_propagates(
    truster, readonly, mock_boto3, mock_idp, mocker
):
    mock_idp.get.return_value = mocker.Mock(status_code=401, text="")

    with pytest.raises(FederationError) as e:
        truster.generate_credentials(readonly.session_id)

    assert e.value.account_name == "prod"
    mock_boto3.sts.assume_role.assert_not_called()


def test_truster_update_to_descendant(truster, registry, readonly):
    child = truster.create(
        truster_request(readonly, account_name="child"), registry.default_profile_id
    )

    with pytest.raises(InvalidAccountRequest):
        truster.update(readonly.session_id, truster_request(child))
    assert readonly.parent_session_id != child.session_id


def test_truster_update_parent(federated, truster, registry, readonly):
    other = federated.create(
        federated_request(account_name="stage", account_number="555555555555"),
        registry.default_profile_id,
    )
    truster.update(readonly.session_id, truster_request(other))

    assert readonly.parent_session_id == other.session_id
    assert readonly.account.parent == other.account.account_id


def test_role_session_name(prod, readonly):
    assert role_session_name(prod, readonly) == "assumed-from-prod-for-prod-readonly"
