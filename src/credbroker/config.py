#
# Copyright 2019 FMR LLC <opensource@fidelity.com>
#
# SPDX-License-Identifier: MIT
#
"""Reads type-checked values from YAML configuration and account requests.

## Overview

`Config` wraps a (possibly nested) dict and provides `Config.get` to read
values with defaults, mandatory values, and type checking. It is used for the
user configuration file (~/.credbroker.yaml) as well as to validate the
requests used to create accounts:

    c = Config.from_file("~/.credbroker.yaml")
    log_level = c.get("CLI", "log_level", type=Choice("DEBUG", "INFO"), default="INFO")

    request = Config({"account_name": "prod", "role_arn": 42})
    request.get("role_arn", type=ROLE_ARN, must_exist=True)  # raises TypeError

A missing mandatory value raises `ValueError` and a value that does not match
the requested type raises `TypeError`. `None`, empty strings, and empty dicts
count as missing, so a blank entry in the YAML file falls back to the default.

## Types

`Str`, `Int`, `Bool`, `URL`, `AccountNumber`, `ROLE_ARN`, and
`SAML_PROVIDER_ARN` are ready to use. `StrMatch`, `Const`, `Choice`, `List`,
and `Dict` build more specific types, and any two types combine with `|` (or
`Or`) and `~` (or `Not`). For example, a dict of tenant names to lists of role
names, or a value that is either an account number or a role ARN:

    Dict(Str, List(StrMatch(r"^[\\w+=,.@-]+$")))
    AccountNumber | ROLE_ARN

Type checks compare exact types, so `True` is not an `Int` and a subclass of
`str` is not a `Str`.
"""

import logging
import re
from pathlib import Path

import yaml

LOG = logging.getLogger(__name__)

_MISSING = (None, {}, "")


class Config:
    """A `Config` reads type-checked values from a Python dictionary."""

    @classmethod
    def from_file(cls, filename, must_exist=False):
        """Load a `Config` from a YAML file.

        If `must_exist` is true, a `FileNotFoundError` is raised if the file
        does not exist, otherwise an empty `Config` is returned.
        """
        path = Path(filename).expanduser()

        if not path.is_file():
            if must_exist:
                raise FileNotFoundError(f"Config file not found: {filename}")
            LOG.debug("no config file at %s", path)
            return cls({})

        with path.open(encoding="utf-8") as f:
            return cls(yaml.safe_load(f) or {})

    def __init__(self, d):
        self.conf = d

    def get(self, *keys, default=None, type=None, must_exist=False):
        """Return the value found by following `keys` into the `Config`.

        If the value is not found, `None` or the `default` value is returned
        unless `must_exist` is `True`, in which case a `ValueError` is raised.
        If `type` is specified, the value must type check or a `TypeError` is
        raised:

            c.get('SAML', 'no_verify', type=Bool, default=False)
            c.get('role_arn', type=ROLE_ARN, must_exist=True)
            c.get('SAML', 'http_headers', type=Dict(Str, Str), default={})
        """
        # pylint: disable=redefined-builtin
        path = "->".join(keys)

        value = self.conf
        for i, key in enumerate(keys):
            if not hasattr(value, "get"):
                raise ValueError(f"{'->'.join(keys[:i])}: not a dictionary")
            value = value.get(key, {})

        if any(value == m for m in _MISSING):
            if must_exist:
                raise ValueError(f"{path}: must be set")
            value = default

        if value is None or type is None or type.type_check(value):
            return value

        raise TypeError(f"{path}: not a {type}: {value!r}")


def _exact(obj, cls):
    # bool is a subclass of int, so isinstance is not strict enough here.
    return obj.__class__ is cls


class Type:
    """Base class of the types accepted by `Config.get`.

    Subclasses implement `type_check`, which returns true if a value is of the
    type, and `__str__`, which describes the type in error messages.
    """

    def type_check(self, obj):
        raise NotImplementedError

    def __str__(self):
        raise NotImplementedError

    def __or__(self, other):
        return Or(self, other)

    def __invert__(self):
        return Not(self)


class Not(Type):
    """Matches any value that `inner` does not."""

    def __init__(self, inner):
        self.inner = inner

    def type_check(self, obj):
        return not self.inner.type_check(obj)

    def __str__(self):
        return f"anything but {self.inner}"


class Or(Type):
    """Matches a value of at least one of the `alternatives`."""

    def __init__(self, *alternatives):
        self.alternatives = alternatives

    def type_check(self, obj):
        for alternative in self.alternatives:
            if alternative.type_check(obj):
                return True
        return False

    def __str__(self):
        return "(" + " or ".join(map(str, self.alternatives)) + ")"


class Const(Type):
    """Matches `value` only, which must also have the same exact type."""

    def __init__(self, value):
        self.value = value

    def type_check(self, obj):
        return _exact(obj, self.value.__class__) and obj == self.value

    def __str__(self):
        return f"constant '{self.value}'"


class Choice(Or):
    """Matches one of the constant `values`, such as an option of a flag."""

    def __init__(self, *values):
        super().__init__(*map(Const, values))


class Scalar(Type):
    """Matches values of exactly the builtin class `cls`."""

    def __init__(self, cls):
        self.cls = cls

    def type_check(self, obj):
        return _exact(obj, self.cls)

    def __str__(self):
        return self.cls.__name__


class StrMatch(Scalar):
    """Matches strings in which the regular expression `pattern` is found.

    `description` replaces the pattern in error messages.
    """

    def __init__(self, pattern, description=None):
        super().__init__(str)
        self.regex = re.compile(pattern)
        self.description = description

    def type_check(self, obj):
        return super().type_check(obj) and self.regex.search(obj) is not None

    def __str__(self):
        if self.description:
            return self.description
        return f"str matching '{self.regex.pattern}'"


class List(Type):
    """Matches a list whose items are all `item_type`."""

    def __init__(self, item_type):
        self.item_type = item_type

    def type_check(self, obj):
        if not _exact(obj, list):
            return False
        return all(map(self.item_type.type_check, obj))

    def __str__(self):
        return f"list of {self.item_type}"


class Dict(Type):
    """Matches a dict of `key_type` keys to `value_type` values."""

    def __init__(self, key_type, value_type):
        self.key_type = key_type
        self.value_type = value_type

    def type_check(self, obj):
        if not _exact(obj, dict):
            return False
        return all(
            self.key_type.type_check(k) and self.value_type.type_check(v)
            for k, v in obj.items()
        )

    def __str__(self):
        return f"dict with {self.key_type} keys and {self.value_type} values"


Str = Scalar(str)
"""A str."""

Int = Scalar(int)
"""An int, which excludes bools."""

Bool = Scalar(bool)
"""A bool."""

URL = StrMatch(r"^https?://.+", "http(s) URL")
"""An http or https URL, such as the sign-on page of an IdP."""

AccountNumber = StrMatch(r"^\d{12}$", "12 digit AWS account number")
"""An AWS account number, as a string to preserve leading zeros."""

ROLE_ARN = StrMatch(r"^arn:aws[\w-]*:iam::\d{12}:role/.+", "IAM role ARN")
"""The ARN of an IAM role, in any AWS partition."""

SAML_PROVIDER_ARN = StrMatch(
    r"^arn:aws[\w-]*:iam::\d{12}:saml-provider/.+", "IAM SAML provider ARN"
)
"""The ARN of an IAM SAML identity provider, in any AWS partition."""
