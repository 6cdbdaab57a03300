"""Classification enums shared across the config model and the engines."""

from __future__ import annotations

from enum import StrEnum

ServiceId = int | str

ROOT_TAG_ID = "root"


class PricingRole(StrEnum):
    """How a priced reference participates in composition."""

    BASE = "base"
    UTILITY = "utility"
    ADDON = "addon"


class PolicyScope(StrEnum):
    """Which service list a policy is evaluated against."""

    GLOBAL = "global"
    VISIBLE_GROUP = "visible_group"


class PolicySubject(StrEnum):
    SERVICES = "services"


class PolicyOp(StrEnum):
    """Structural rule operators."""

    ALL_EQUAL = "all_equal"
    UNIQUE = "unique"
    NO_MIX = "no_mix"
    ALL_TRUE = "all_true"
    ANY_TRUE = "any_true"
    MAX_COUNT = "max_count"
    MIN_COUNT = "min_count"


class RoleFilter(StrEnum):
    BASE = "base"
    UTILITY = "utility"
    BOTH = "both"


class WhereOp(StrEnum):
    """Comparison operators for policy ``filter.where`` clauses."""

    EQ = "eq"
    NEQ = "neq"
    IN = "in"
    NIN = "nin"
    EXISTS = "exists"
    TRUTHY = "truthy"
    FALSY = "falsy"


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


class SelectionStrategy(StrEnum):
    """Ordering of eligible fallback candidates."""

    PRIORITY = "priority"
    CHEAPEST = "cheapest"


class FallbackMode(StrEnum):
    """``strict`` fails candidates on any policy failure; ``dev`` only on errors."""

    STRICT = "strict"
    DEV = "dev"


class Env(StrEnum):
    """Where a selection lives: an end-user client or the authoring workspace."""

    CLIENT = "client"
    WORKSPACE = "workspace"


CONSTRAINT_FLAGS: tuple[str, ...] = ("refill", "cancel", "dripfeed")
