#
# Copyright 2019 FMR LLC <opensource@fidelity.com>
#
# SPDX-License-Identifier: MIT
#
"""Find the generator responsible for a type of account.

## Overview

The `SessionProviderDispatcher` is the only place that knows which
`credbroker.session.SessionGenerator` handles which account type. Callers act
on a session without knowing what kind of account it holds:

    dispatcher = SessionProviderDispatcher(registry, CredentialFileStore())
    session = registry.find("prod-readonly")
    dispatcher.get_service(session.account.type).start(session.session_id)

The table of generators is fixed when the dispatcher is created. To support a
new kind of account, add an account class to `credbroker.account`, a generator
for it, and an entry in `DEFAULT_GENERATORS`.

Generators accept keyword options in addition to the registry and store. These
are passed via `options`, a dict keyed by account type:

    dispatcher = SessionProviderDispatcher(
        registry,
        store,
        options={AccountType.FEDERATED: {"auth": HTTPBasicAuth(user, password)}},
    )
"""

import logging

from credbroker.account import AccountType
from credbroker.errors import UnsupportedAccountType
from credbroker.session.aws import DirectGenerator, FederatedGenerator, TrusterGenerator
from credbroker.session.azure import SubscriptionGenerator

LOG = logging.getLogger(__name__)

DEFAULT_GENERATORS = {
    AccountType.DIRECT: DirectGenerator,
    AccountType.FEDERATED: FederatedGenerator,
    AccountType.TRUSTER: TrusterGenerator,
    AccountType.SUBSCRIPTION: SubscriptionGenerator,
}
"""Generator class for each account type."""


class SessionProviderDispatcher:
    """Maps account types to the generators that produce their credentials.

    One generator is instantiated per account type in `generators`, which
    defaults to `DEFAULT_GENERATORS`, with the `registry`, `store`, this
    dispatcher, and any keyword arguments found in `options` for that type.
    """

    def __init__(self, registry, store, options=None, generators=None):
        options = options or {}
        generators = DEFAULT_GENERATORS if generators is None else generators

        self.registry = registry
        self._services = {
            account_type: cls(
                registry, store, dispatcher=self, **options.get(account_type, {})
            )
            for account_type, cls in generators.items()
        }
        LOG.debug("generators registered for %s", sorted(self._services))

    def get_service(self, account_type):
        """Returns the generator for `account_type`.

        Raises `UnsupportedAccountType` if there is none.
        """
        try:
            return self._services[account_type]
        except KeyError:
            raise UnsupportedAccountType(account_type) from None

    resolve = get_service

    def for_session(self, session_id):
        """Returns the generator for the account type of a session."""
        session = self.registry.get(session_id)
        try:
            return self.get_service(session.account.type)
        except UnsupportedAccountType as e:
            e.session_id = session_id
            e.account_name = session.account.account_name
            raise

    def account_types(self):
        """Returns the account types with a registered generator."""
        return sorted(self._services)
