#
# Copyright 2019 FMR LLC <opensource@fidelity.com>
#
# SPDX-License-Identifier: MIT
#
"""Exceptions raised by credbroker.

All exceptions derive from `CredbrokerError`, which carries the identifier
of the session and the name of the account involved, when known, so callers
can render a meaningful message without holding a reference to the component
that raised it:

    try:
        dispatcher.get_service(session.account.type).start(session.session_id)
    except CredbrokerError as e:
        print(f"{e.account_name}: {e}")

`InvalidAccountRequest`
:  Raised if the parameters used to create or update an account are invalid.

`UnsupportedAccountType`
:  Raised if no generator is registered for an account type.

`SessionNotFound`, `ParentSessionNotFound`
:  Raised if a session, or the parent of a chained session, does not exist.

`CyclicTrustChain`
:  Raised if the parents of a chained session loop or nest too deeply.

`ProfileNotFound`
:  Raised if a profile id is not in the workspace profile table.

`CredentialIssuanceError`, `FederationError`, `RoleAssumptionError`
:  Raised if the cloud provider refuses to issue credentials.

`StoreReadError`, `StoreWriteError`
:  Raised if the credential file is malformed or cannot be written.

`WorkspaceError`
:  Raised if the workspace file cannot be written.
"""


class CredbrokerError(Exception):
    """Base class of all credbroker exceptions."""

    def __init__(self, message, session_id=None, account_name=None):
        super().__init__(message)
        self.message = message
        self.session_id = session_id
        self.account_name = account_name


class InvalidAccountRequest(CredbrokerError):
    """Raised if an account request is missing fields or has bad values."""


class UnsupportedAccountType(CredbrokerError):
    """Raised if there is no generator for an account type."""

    def __init__(self, account_type, session_id=None, account_name=None):
        super().__init__(
            f"Unsupported account type: {account_type}", session_id, account_name
        )
        self.account_type = account_type


class SessionNotFound(CredbrokerError):
    """Raised if a session id is not in the registry."""


class ParentSessionNotFound(SessionNotFound):
    """Raised if the parent of a truster session is not in the registry."""


class CyclicTrustChain(CredbrokerError):
    """Raised if a chain of truster sessions loops back on itself."""

    def __init__(self, message, chain, session_id=None, account_name=None):
        super().__init__(message, session_id, account_name)
        self.chain = chain


class ProfileNotFound(CredbrokerError):
    """Raised if a profile id is not in the profile table."""


class CredentialIssuanceError(CredbrokerError):
    """Raised if the cloud provider fails to issue credentials."""


class FederationError(CredentialIssuanceError):
    """Raised if the SAML exchange with the IdP or STS fails."""


class RoleAssumptionError(CredentialIssuanceError):
    """Raised if STS refuses to assume a role from a parent session."""


class StoreError(CredbrokerError):
    """Base class for credential file errors."""

    def __init__(self, message, path, session_id=None, account_name=None):
        super().__init__(message, session_id, account_name)
        self.path = path


class StoreReadError(StoreError):
    """Raised if the credential file cannot be read or parsed."""


class StoreWriteError(StoreError):
    """Raised if the credential file cannot be written."""


class WorkspaceError(CredbrokerError):
    """Raised if the workspace file cannot be saved."""

    def __init__(self, message, path, session_id=None, account_name=None):
        super().__init__(message, session_id, account_name)
        self.path = path
