#
# Copyright 2019 FMR LLC <opensource@fidelity.com>
#
# SPDX-License-Identifier: MIT
#
"""CLI and library to broker short-lived cloud credentials for local tools.

## Overview

`credbroker` turns configured cloud accounts into short-lived, provider-native
credentials and writes them to the local credential file that other tools, such
as the AWS CLI and SDKs, read. Accounts may hold long-lived keys, federate with
an Identity Provider via SAML, or chain off of another account by assuming a
role with its credentials.

### CLI Usage

The credbroker CLI is documented on the `credbroker.cli` page, including its
commands and the syntax of the configuration file.

### Library Usage

The CLI is a thin layer over the library. The following submodules are of
particular interest to library users:

`credbroker.registry`
:  The `credbroker.registry.SessionRegistry` holds the sessions and profiles of
a workspace and persists them.

`credbroker.dispatch`
:  The `credbroker.dispatch.SessionProviderDispatcher` returns the generator
for an account type.

`credbroker.session`
:  Defines sessions and the `credbroker.session.SessionGenerator` interface
implemented by the AWS and Azure generators in its submodules.

`credbroker.credfile`
:  The `credbroker.credfile.CredentialFileStore` reads and writes profiles in
the credential file.

For example, to create a federated account and start its session:

    registry = SessionRegistry.load("~/.credbroker/workspace.yaml")
    dispatcher = SessionProviderDispatcher(registry, CredentialFileStore())

    generator = dispatcher.get_service(AccountType.FEDERATED)
    session = generator.create(
        {
            "account_name": "prod",
            "account_number": "111111111111",
            "idp_arn": "arn:aws:iam::111111111111:saml-provider/ADFS",
            "idp_url": "https://adfs.example.com/adfs/ls/IdpInitiatedSignOn.aspx",
            "roles": ["Admin"],
        },
        registry.add_profile("prod"),
    )
    generator.start(session.session_id)
"""

name = "credbroker"
__version__ = "1.0.0"
