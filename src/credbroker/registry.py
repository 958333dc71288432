#
# Copyright 2019 FMR LLC <opensource@fidelity.com>
#
# SPDX-License-Identifier: MIT
#
"""Keeps track of the sessions, profiles, and settings of a workspace.

## Overview

`SessionRegistry` owns every `credbroker.session.Session` of the workspace as
well as the table of profile names that sessions write their credentials to.
Sessions refer to a profile by id, so several sessions can share a profile and
a profile can be renamed without touching the sessions.

A registry can be used purely in memory, or it can be persisted as YAML:

    registry = SessionRegistry.load("~/.credbroker/workspace.yaml")
    prod = registry.add_profile("prod")
    ...
    registry.save()

The YAML file contains three top-level keys:

    settings:
      default_region: us-east-1
      default_location: eastus
      saml_role_session_duration: 3600
      session_duration: 3600
    profiles:
      9a4f...: default
      c3d1...: prod
    sessions:
      - session_id: 51e0...
        status: inactive
        profile_id: c3d1...
        parent_session_id: null
        start_time: null
        account:
          type: federated
          account_name: prod
          ...

## Thread Safety

All methods are thread-safe. The registry does not serialize operations on a
single session. Callers must not start, stop, or rotate the same session from
multiple threads at once.
"""

import logging
import threading
import uuid
from pathlib import Path

import yaml

from credbroker.account import AccountType
from credbroker.errors import (
    CredbrokerError,
    ProfileNotFound,
    SessionNotFound,
    WorkspaceError,
)
from credbroker.session import Session

LOG = logging.getLogger(__name__)

DEFAULT_PROFILE_NAME = "default"

DEFAULT_SETTINGS = {
    "default_region": "us-east-1",
    "default_location": "eastus",
    "saml_role_session_duration": 3600,
    "session_duration": 3600,
}


class SessionRegistry:
    """Collection of sessions and profiles for a workspace.

    If `path` is specified, `save` persists the workspace to that file,
    otherwise `save` does nothing.
    """

    def __init__(self, path=None, settings=None):
        self.path = Path(path).expanduser() if path else None
        self.settings = dict(DEFAULT_SETTINGS)
        self.settings.update(settings or {})

        self._sessions = {}
        self._profiles = {}
        self._lock = threading.RLock()
        self.default_profile_id = self._ensure_profile(DEFAULT_PROFILE_NAME)

    @classmethod
    def load(cls, path):
        """Returns a registry loaded from the YAML workspace file at `path`.

        An empty registry bound to `path` is returned if the file does not
        exist yet.
        """
        path = Path(path).expanduser()
        if not path.exists():
            LOG.info("no workspace at %s, starting a new one", path)
            return cls(path)

        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        registry = cls(path, data.get("settings"))
        profiles = data.get("profiles") or {}
        with registry._lock:
            if profiles:
                registry._profiles = {str(k): v for k, v in profiles.items()}
                registry.default_profile_id = registry._ensure_profile(
                    DEFAULT_PROFILE_NAME
                )
            for d in data.get("sessions") or []:
                session = Session.from_dict(d)
                registry._sessions[session.session_id] = session

        LOG.info("loaded %d sessions from %s", len(registry._sessions), path)
        return registry

    def save(self):
        """Write the workspace to its YAML file, if it has one.

        `WorkspaceError` is raised if the file cannot be written.
        """
        if self.path is None:
            return

        with self._lock:
            data = {
                "settings": dict(self.settings),
                "profiles": dict(self._profiles),
                "sessions": [s.to_dict() for s in self._sessions.values()],
            }

            LOG.debug("saving workspace to %s", self.path)
            tmp = self.path.with_suffix(".tmp")
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with tmp.open("w", encoding="utf-8") as f:
                    yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

                # Pathlib.replace uses os.replace which is atomic on POSIX systems
                tmp.replace(self.path)
            except (OSError, yaml.YAMLError) as e:
                raise WorkspaceError(f"Cannot save {self.path}: {e}", self.path) from e

    def get(self, session_id):
        """Returns the session with `session_id`, or raises `SessionNotFound`."""
        with self._lock:
            try:
                return self._sessions[session_id]
            except KeyError:
                raise SessionNotFound(
                    f"Session not found: {session_id}", session_id
                ) from None

    def sessions(self):
        """Returns a list of all sessions."""
        with self._lock:
            return list(self._sessions.values())

    def find(self, name_or_id):
        """Returns the session matching a session id or account name.

        Raises `SessionNotFound` if there is no match, or if the account name
        is shared by more than one session.
        """
        with self._lock:
            if name_or_id in self._sessions:
                return self._sessions[name_or_id]
            matches = [
                s
                for s in self._sessions.values()
                if s.account.account_name == name_or_id
            ]

        if len(matches) != 1:
            raise SessionNotFound(
                f"{len(matches)} sessions match {name_or_id}", account_name=name_or_id
            )
        return matches[0]

    def children(self, session_id):
        """Returns the truster sessions whose parent is `session_id`."""
        with self._lock:
            return [
                s
                for s in self._sessions.values()
                if s.account.type == AccountType.TRUSTER
                and s.parent_session_id == session_id
            ]

    def add(self, session):
        """Add a session to the registry and save the workspace."""
        with self._lock:
            if session.session_id in self._sessions:
                raise CredbrokerError(
                    f"Session already exists: {session.session_id}",
                    session.session_id,
                    session.account.account_name,
                )
            self.get_profile_name(session.profile_id)
            self._sessions[session.session_id] = session
            self.save()

    def remove(self, session_id):
        """Remove a session from the registry and save the workspace.

        Truster sessions using the removed session as a parent are kept. They
        fail with `credbroker.errors.ParentSessionNotFound` when used.
        """
        with self._lock:
            self.get(session_id)
            del self._sessions[session_id]
            orphans = self.children(session_id)
            self.save()

        for orphan in orphans:
            LOG.warning("session %s has lost its parent", orphan.account.account_name)

    def profiles(self):
        """Returns a dict of profile ids to profile names."""
        with self._lock:
            return dict(self._profiles)

    def get_profile_name(self, profile_id):
        """Returns the profile name for `profile_id`, or raises `ProfileNotFound`."""
        with self._lock:
            try:
                return self._profiles[profile_id]
            except KeyError:
                raise ProfileNotFound(f"Profile not found: {profile_id}") from None

    def add_profile(self, name):
        """Returns the id of profile `name`, adding it if it does not exist."""
        with self._lock:
            count = len(self._profiles)
            profile_id = self._ensure_profile(name)
            if len(self._profiles) != count:
                self.save()
            return profile_id

    def _ensure_profile(self, name):
        for profile_id, profile_name in self._profiles.items():
            if profile_name == name:
                return profile_id
        profile_id = uuid.uuid4().hex
        self._profiles[profile_id] = name
        return profile_id

    def rename_profile(self, profile_id, name):
        """Rename a profile.

        A profile cannot be renamed while an active session uses it, or to the
        name of another profile.
        """
        with self._lock:
            self.get_profile_name(profile_id)
            if name in self._profiles.values():
                raise CredbrokerError(f"Profile already exists: {name}")
            for session in self._sessions.values():
                if session.profile_id == profile_id and session.active:
                    raise CredbrokerError(
                        "Cannot rename a profile used by an active session",
                        session.session_id,
                        session.account.account_name,
                    )
            self._profiles[profile_id] = name
            self.save()
