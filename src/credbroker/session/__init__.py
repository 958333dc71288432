#
# Copyright 2019 FMR LLC <opensource@fidelity.com>
#
# SPDX-License-Identifier: MIT
#
"""Sessions and the generators that materialize their credentials.

## Overview

A `Session` pairs an account from `credbroker.account` with runtime state: its
status, the profile its credentials are written to, and, for chained accounts,
the id of its parent session. Sessions are kept in a
`credbroker.registry.SessionRegistry`.

A `SessionGenerator` knows how to produce short-lived credentials for one type
of account and how to write them to, or remove them from, the credential file.
Every generator provides the same operations regardless of account type:

`SessionGenerator.create`
:  Validate an account request, then register a new session for it.

`SessionGenerator.generate_credentials`
:  Obtain a fresh set of credentials from the cloud provider.

`SessionGenerator.apply_credentials`
:  Write credentials into the session's profile and mark it active.

`SessionGenerator.de_apply_credentials`
:  Remove the session's profile and mark it inactive.

Callers never pick a generator themselves. They ask the
`credbroker.dispatch.SessionProviderDispatcher` for the generator matching the
account type of a session:

    generator = dispatcher.get_service(session.account.type)
    generator.start(session.session_id)

Generators for each cloud are defined in the submodules:

`credbroker.session.aws`
:  Direct, federated, and truster (role chaining) AWS accounts.

`credbroker.session.azure`
:  Azure subscriptions.
"""

import logging
import uuid
from datetime import datetime, timezone

from credbroker.account import account_from_dict, account_to_dict
from credbroker.config import Config
from credbroker.errors import (
    CredbrokerError,
    InvalidAccountRequest,
    StoreError,
    WorkspaceError,
)

LOG = logging.getLogger(__name__)


class SessionStatus:
    """Status of a session.

    A session is active when its credentials are in the credential file.
    """

    INACTIVE = "inactive"
    ACTIVE = "active"


class Session:
    """Runtime state of an account.

    `profile_id` refers to an entry in the profile table of the registry.
    `parent_session_id` is only set for truster accounts. A new `session_id`
    is generated if one is not supplied.
    """

    def __init__(
        self,
        account,
        profile_id,
        parent_session_id=None,
        session_id=None,
        status=SessionStatus.INACTIVE,
        start_time=None,
    ):
        self.session_id = session_id or uuid.uuid4().hex
        self.account = account
        self.profile_id = profile_id
        self.parent_session_id = parent_session_id
        self.status = status
        self.start_time = start_time

    @property
    def active(self):
        return self.status == SessionStatus.ACTIVE

    def activate(self):
        self.status = SessionStatus.ACTIVE
        self.start_time = datetime.now(timezone.utc)

    def deactivate(self):
        self.status = SessionStatus.INACTIVE
        self.start_time = None

    def to_dict(self):
        return {
            "session_id": self.session_id,
            "status": self.status,
            "profile_id": self.profile_id,
            "parent_session_id": self.parent_session_id,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "account": account_to_dict(self.account),
        }

    @classmethod
    def from_dict(cls, d):
        start_time = d.get("start_time")
        return cls(
            account_from_dict(d["account"]),
            d["profile_id"],
            parent_session_id=d.get("parent_session_id"),
            session_id=d["session_id"],
            status=d.get("status", SessionStatus.INACTIVE),
            start_time=datetime.fromisoformat(start_time) if start_time else None,
        )

    def __repr__(self):
        return (
            f"Session({self.session_id!r}, {self.account.type}, "
            f"{self.account.account_name!r}, {self.status})"
        )


class CredentialsInfo:
    """Short-lived AWS credentials for a session.

    These values are sensitive. The `repr` omits the secret and token so the
    object can be safely included in log messages.
    """

    def __init__(
        self, access_key_id, secret_access_key, session_token, region, expiration=None
    ):
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.session_token = session_token
        self.region = region
        self.expiration = expiration

    @classmethod
    def from_sts(cls, response, region):
        """Build from the response of an STS assume_role* or get_session_token."""
        creds = response["Credentials"]
        return cls(
            creds["AccessKeyId"].strip(),
            creds["SecretAccessKey"].strip(),
            creds["SessionToken"].strip(),
            region,
            creds.get("Expiration"),
        )

    def profile_block(self):
        """Returns the AWS credential file keys for these credentials."""
        return {
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
            "aws_session_token": self.session_token,
            "region": self.region,
        }

    def __repr__(self):
        return f"CredentialsInfo({self.access_key_id!r}, region={self.region!r})"


class TokenCredentialsInfo:
    """Short-lived bearer token for an Azure subscription."""

    def __init__(self, token, expires_on, subscription_id, region):
        self.token = token
        self.expires_on = expires_on
        self.subscription_id = subscription_id
        self.region = region

    def profile_block(self):
        return {
            "azure_subscription_id": self.subscription_id,
            "azure_access_token": self.token,
            "azure_token_expires_on": self.expires_on,
            "region": self.region,
        }

    def __repr__(self):
        return (
            f"TokenCredentialsInfo(subscription={self.subscription_id!r}, "
            f"expires_on={self.expires_on!r})"
        )


class SessionGenerator:
    """Abstract base class of the per account type credential generators.

    This class cannot be used directly. Subclasses must set `account_type` and
    `fields`, and implement `build_account` and `generate_credentials`.

    `fields` is a sequence of (name, type) tuples for the request values that
    must be supplied when creating an account, and `optional_fields` lists
    those that may be omitted. The `registry` is the
    `credbroker.registry.SessionRegistry` holding the sessions and `store` is
    the `credbroker.credfile.CredentialFileStore` where credentials are
    applied. Generators that depend on other generators, such as those for
    chained accounts, use the `dispatcher` to find them.
    """

    account_type = None
    fields = ()
    optional_fields = ()

    # Name of the workspace setting used when a request omits a region.
    default_region_setting = "default_region"

    def __init__(self, registry, store, dispatcher=None):
        self.registry = registry
        self.store = store
        self.dispatcher = dispatcher

    def get(self, session_id):
        """Returns the session, or raises `SessionNotFound`."""
        return self.registry.get(session_id)

    def create(self, request, profile_id):
        """Create and register a session for the account in `request`.

        `request` is a dict of the values listed in `fields`. Raises
        `InvalidAccountRequest` if any are missing or invalid. Returns the new
        session. No calls to the cloud provider are made.
        """
        self.registry.get_profile_name(profile_id)
        values = self.validate(request)
        account = self.build_account(values, uuid.uuid4().hex)
        self.check_unique(account)

        session = Session(
            account, profile_id, parent_session_id=values.get("parent_session_id")
        )
        self.registry.add(session)
        LOG.info("created %s session %s", self.account_type, account.account_name)
        return session

    def update(self, session_id, request):
        """Replace the account of a session with the one in `request`.

        The account id, profile, and status of the session are retained.
        """
        session = self.get(session_id)
        values = self.validate(request)
        account = self.build_account(values, session.account.account_id)
        self.check_unique(account, exclude=session_id)

        session.account = account
        if "parent_session_id" in values:
            session.parent_session_id = values["parent_session_id"]
        self.registry.save()
        LOG.info("updated %s session %s", self.account_type, account.account_name)
        return session

    def validate(self, request):
        """Returns a dict of validated values from the `request` dict."""
        request = dict(request)
        if not request.get("region"):
            request["region"] = self.registry.settings.get(self.default_region_setting)

        c = Config(request)
        values = {}
        fields = [(n, t, True) for n, t in self.fields]
        fields += [(n, t, False) for n, t in self.optional_fields]
        for name, type_, required in fields:
            try:
                values[name] = c.get(name, type=type_, must_exist=required)
            except (ValueError, TypeError) as e:
                raise InvalidAccountRequest(
                    f"Invalid {self.account_type} account request: {e}",
                    account_name=request.get("account_name"),
                ) from e
        return values

    def check_unique(self, account, exclude=None):
        """Raise `InvalidAccountRequest` if `account` duplicates another.

        Subclasses override this when an identifying value of the account must
        be unique within the workspace. By default, duplicates are allowed.
        """

    def build_account(self, values, account_id):
        """Returns an account built from validated request `values`."""
        raise NotImplementedError

    def generate_credentials(self, session_id):
        """Returns fresh credentials for the session.

        The credentials are a `CredentialsInfo` or `TokenCredentialsInfo`
        depending on the cloud provider. Nothing is written to the credential
        file.
        """
        raise NotImplementedError

    def apply_credentials(self, session_id, credentials_info):
        """Write credentials to the session's profile and mark it active.

        Applying twice replaces the profile rather than duplicating it. If the
        credential file cannot be read or written, the session is marked
        inactive and the `StoreError` is re-raised.

        If the workspace cannot be saved afterwards, `WorkspaceError` is
        raised. The profile is left written and the session active in memory,
        matching the credential file, until a later save succeeds.
        """
        session = self.get(session_id)
        profile_name = self.registry.get_profile_name(session.profile_id)
        block = credentials_info.profile_block()

        try:
            self.store.upsert(profile_name, block)
        except StoreError as e:
            session.deactivate()
            self.registry.save()
            e.session_id = session_id
            e.account_name = session.account.account_name
            raise

        session.activate()
        self._save(session)
        LOG.info(
            "applied %s credentials to profile %s",
            session.account.account_name,
            profile_name,
        )

    def de_apply_credentials(self, session_id):
        """Remove the session's profile and mark it inactive.

        Removing a profile that is not present is not an error. If the
        credential file cannot be updated, the session status is unchanged.
        """
        session = self.get(session_id)
        profile_name = self.registry.get_profile_name(session.profile_id)

        try:
            self.store.remove(profile_name)
        except StoreError as e:
            e.session_id = session_id
            e.account_name = session.account.account_name
            raise

        session.deactivate()
        self._save(session)
        LOG.info(
            "removed %s credentials from profile %s",
            session.account.account_name,
            profile_name,
        )

    def _save(self, session):
        try:
            self.registry.save()
        except WorkspaceError as e:
            e.session_id = session.session_id
            e.account_name = session.account.account_name
            raise

    def start(self, session_id):
        """Generate and apply credentials for a session.

        Other active sessions sharing the profile are marked inactive as their
        credentials are replaced by this session's.
        """
        session = self.get(session_id)
        credentials_info = self.generate_credentials(session_id)
        self.apply_credentials(session_id, credentials_info)

        for other in self.registry.sessions():
            if (
                other.active
                and other.session_id != session_id
                and other.profile_id == session.profile_id
            ):
                LOG.info("stopping %s sharing profile", other.account.account_name)
                other.deactivate()
        self.registry.save()
        return credentials_info

    def stop(self, session_id):
        """Remove a session's credentials from the credential file."""
        self.de_apply_credentials(session_id)

    def rotate(self, session_id):
        """Replace the credentials of an active session with fresh ones."""
        session = self.get(session_id)
        if not session.active:
            raise CredbrokerError(
                "Cannot rotate an inactive session",
                session_id,
                session.account.account_name,
            )
        credentials_info = self.generate_credentials(session_id)
        self.apply_credentials(session_id, credentials_info)
        return credentials_info

    def delete(self, session_id):
        """Remove a session from the registry, de-applying it first if active."""
        session = self.get(session_id)
        if session.active:
            self.de_apply_credentials(session_id)
        self.registry.remove(session_id)
        LOG.info("deleted session %s", session.account.account_name)
