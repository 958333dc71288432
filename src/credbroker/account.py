#
# Copyright 2019 FMR LLC <opensource@fidelity.com>
#
# SPDX-License-Identifier: MIT
#
"""Immutable descriptions of cloud identities.

## Overview

An account describes where credentials come from. It has no behavior and no
runtime state; the latter lives in `credbroker.session.Session`. There are four
kinds of accounts, identified by the `type` tag on each class:

`DirectAccount`
:  Long-lived AWS keys, stored in a profile of the standard AWS files, that
are exchanged for short-lived credentials.

`FederatedAccount`
:  An AWS account accessed via SAML federation with an Identity Provider.

`TrusterAccount`
:  An AWS account accessed by assuming a role from another session's
credentials (role chaining).

`SubscriptionAccount`
:  An Azure subscription.

Accounts are namedtuples, so use `_replace` to derive a modified copy:

    renamed = account._replace(account_name="prod-admin")
"""

from collections import namedtuple

from credbroker.errors import UnsupportedAccountType


class AccountType:
    """Tags used to identify the kind of an account."""

    DIRECT = "direct"
    FEDERATED = "federated"
    TRUSTER = "truster"
    SUBSCRIPTION = "subscription"

    ALL = (DIRECT, FEDERATED, TRUSTER, SUBSCRIPTION)


AWS_ACCOUNT_TYPES = frozenset(
    [AccountType.DIRECT, AccountType.FEDERATED, AccountType.TRUSTER]
)
"""Account types that produce AWS credentials and can parent a truster."""


Role = namedtuple("Role", ["name", "role_arn"])


def role_from_name(account_number, name):
    """Returns a `Role` for the IAM role `name` in `account_number`."""
    return Role(name, f"arn:aws:iam::{account_number}:role/{name}")


class DirectAccount(
    namedtuple(
        "DirectAccount",
        ["account_id", "account_name", "region", "account_number", "source_profile"],
    )
):
    """AWS account with long-lived keys stored under `source_profile`."""

    __slots__ = ()
    type = AccountType.DIRECT


class FederatedAccount(
    namedtuple(
        "FederatedAccount",
        [
            "account_id",
            "account_name",
            "region",
            "account_number",
            "idp_arn",
            "idp_url",
            "roles",
            "selected_role",
        ],
    )
):
    """AWS account reached via SAML federation.

    `roles` is a tuple of `Role`. The session federates into the role named by
    `selected_role`, or the first role if it is `None`.
    """

    __slots__ = ()
    type = AccountType.FEDERATED

    @property
    def role(self):
        """Returns the `Role` the session federates into."""
        if self.selected_role is None:
            return self.roles[0]
        for role in self.roles:
            if role.name == self.selected_role:
                return role
        raise ValueError(f"{self.account_name} has no role {self.selected_role}")


class TrusterAccount(
    namedtuple(
        "TrusterAccount",
        [
            "account_id",
            "account_name",
            "region",
            "account_number",
            "role_arn",
            "parent",
            "parent_role",
        ],
    )
):
    """AWS account reached by assuming `role_arn` from the `parent` account."""

    __slots__ = ()
    type = AccountType.TRUSTER


class SubscriptionAccount(
    namedtuple(
        "SubscriptionAccount",
        ["account_id", "account_name", "region", "subscription_id"],
    )
):
    """Azure subscription. The `region` is an Azure location."""

    __slots__ = ()
    type = AccountType.SUBSCRIPTION


ACCOUNT_CLASSES = {
    cls.type: cls
    for cls in (DirectAccount, FederatedAccount, TrusterAccount, SubscriptionAccount)
}


def account_to_dict(account):
    """Returns a dict suitable for YAML serialization of `account`."""
    d = account._asdict()
    if account.type == AccountType.FEDERATED:
        d["roles"] = [dict(r._asdict()) for r in account.roles]
    d["type"] = account.type
    return dict(d)


def account_from_dict(d):
    """Returns an account built from a dict created by `account_to_dict`."""
    d = dict(d)
    account_type = d.pop("type", None)
    if account_type not in ACCOUNT_CLASSES:
        raise UnsupportedAccountType(account_type, account_name=d.get("account_name"))

    if account_type == AccountType.FEDERATED:
        d["roles"] = tuple(Role(**r) for r in d.get("roles", []))

    cls = ACCOUNT_CLASSES[account_type]
    return cls(**{f: d.get(f) for f in cls._fields})
