#
# Copyright 2019 FMR LLC <opensource@fidelity.com>
#
# SPDX-License-Identifier: MIT
#
"""Generate Azure access tokens for subscription accounts.

## Overview

`SubscriptionGenerator` obtains an Azure Resource Manager access token for the
subscription of an account and applies it, together with the subscription id
and location, to the session's profile:

    [contoso-dev]
    azure_subscription_id = 00000000-0000-0000-0000-000000000000
    azure_access_token = eyJ0eXAiOiJKV1QiLCJhbGciOiJSUzI1NiIsIng1dCI6...
    azure_token_expires_on = 1700000000
    region = eastus

By default, the token is obtained from `DefaultAzureCredential`, which tries
environment variables, a managed identity, the Azure CLI, and others in turn.
Any `azure.core.credentials.TokenCredential` can be supplied instead.

In Azure, the same credential is used regardless of the subscription within a
tenant, which is why a single credential is shared by all sessions. The token
is not scoped to a subscription; the subscription id is written alongside it so
consumers know which subscription the session refers to.
"""

import logging
import threading

from azure.core.exceptions import AzureError
from azure.identity import DefaultAzureCredential

from credbroker.account import AccountType, SubscriptionAccount
from credbroker.config import Str
from credbroker.errors import CredentialIssuanceError, InvalidAccountRequest
from credbroker.session import SessionGenerator, TokenCredentialsInfo

LOG = logging.getLogger(__name__)

ARM_SCOPE = "https://management.azure.com/.default"


class SubscriptionGenerator(SessionGenerator):
    """A generator for Azure subscription accounts.

    The `credential` argument is optional and specifies the Azure token
    credential to use. If none is provided, a `DefaultAzureCredential` is
    created the first time a token is needed.

    Request fields: `account_name`, `region` (an Azure location), and
    `subscription_id`.
    """

    account_type = AccountType.SUBSCRIPTION
    fields = (
        ("account_name", Str),
        ("region", Str),
        ("subscription_id", Str),
    )
    default_region_setting = "default_location"

    def __init__(self, registry, store, dispatcher=None, credential=None):
        super().__init__(registry, store, dispatcher)
        self._credential = credential
        self._lock = threading.Lock()

    @property
    def credential(self):
        with self._lock:
            if self._credential is None:
                self._credential = DefaultAzureCredential()
            return self._credential

    def build_account(self, values, account_id):
        return SubscriptionAccount(
            account_id,
            values["account_name"],
            values["region"],
            values["subscription_id"],
        )

    def check_unique(self, account, exclude=None):
        for other in self.registry.sessions():
            if (
                other.session_id != exclude
                and other.account.type == AccountType.SUBSCRIPTION
                and other.account.subscription_id == account.subscription_id
            ):
                raise InvalidAccountRequest(
                    f"Subscription id must be unique: {account.subscription_id}",
                    account_name=account.account_name,
                )

    def generate_credentials(self, session_id):
        session = self.get(session_id)
        account = session.account

        LOG.info("Getting access token for subscription %s", account.subscription_id)
        try:
            token = self.credential.get_token(ARM_SCOPE)
        except AzureError as e:
            raise CredentialIssuanceError(
                str(e), session_id, account.account_name
            ) from e

        return TokenCredentialsInfo(
            token.token, token.expires_on, account.subscription_id, account.region
        )
