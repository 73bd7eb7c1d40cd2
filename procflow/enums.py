"""Closed vocabularies used by procedures and runs."""

from __future__ import annotations

from enum import Enum


class Action(str, Enum):
    """What a step does. Determines its executor and config shape."""

    # human entry
    INPUT = "INPUT"
    APPROVAL = "APPROVAL"
    AUTHORIZE = "AUTHORIZE"
    MANUAL_TASK = "MANUAL_TASK"
    NEGOTIATE = "NEGOTIATE"
    INSPECT = "INSPECT"
    # automated
    AI_PARSE = "AI_PARSE"
    DB_INSERT = "DB_INSERT"
    HTTP_REQUEST = "HTTP_REQUEST"
    FETCH = "FETCH"
    IMPORT = "IMPORT"
    SEND_EMAIL = "SEND_EMAIL"
    TRANSMIT = "TRANSMIT"
    STORE = "STORE"
    GOOGLE_SHEET = "GOOGLE_SHEET"
    DOC_GENERATE = "DOC_GENERATE"
    GENERATE = "GENERATE"
    REPORT = "REPORT"
    CALCULATE = "CALCULATE"
    GATEWAY = "GATEWAY"
    VALIDATE = "VALIDATE"
    COMPARE = "COMPARE"

    @property
    def is_human(self) -> bool:
        return self in HUMAN_ACTIONS

    @property
    def is_automated(self) -> bool:
        return self not in HUMAN_ACTIONS

    @property
    def is_routing_only(self) -> bool:
        return self in ROUTING_ACTIONS


HUMAN_ACTIONS = frozenset(
    {
        Action.INPUT,
        Action.APPROVAL,
        Action.AUTHORIZE,
        Action.MANUAL_TASK,
        Action.NEGOTIATE,
        Action.INSPECT,
    }
)
ROUTING_ACTIONS = frozenset({Action.GATEWAY, Action.VALIDATE, Action.COMPARE})
LOGIC_ACTIONS = ROUTING_ACTIONS | {Action.CALCULATE}
MISMATCH_ACTIONS = frozenset({Action.VALIDATE, Action.COMPARE})
DECISION_ACTIONS = frozenset({Action.APPROVAL, Action.AUTHORIZE})


class Outcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    FLAGGED = "FLAGGED"


class RunStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FLAGGED = "FLAGGED"
    BLOCKED = "BLOCKED"
    OPEN_FOR_CLAIM = "OPEN_FOR_CLAIM"


class AssignmentType(str, Enum):
    STARTER = "STARTER"
    SPECIFIC_USER = "SPECIFIC_USER"
    TEAM_QUEUE = "TEAM_QUEUE"

    @classmethod
    def _missing_(cls, value):
        # older documents wrote "TEAM" for queue assignments
        if isinstance(value, str) and value.strip().upper() in ("TEAM", "QUEUE"):
            return cls.TEAM_QUEUE
        if isinstance(value, str) and value.strip().upper() == "USER":
            return cls.SPECIFIC_USER
        return None


class AssigneeKind(str, Enum):
    USER = "USER"
    TEAM = "TEAM"


class NotificationKind(str, Enum):
    ASSIGNMENT = "ASSIGNMENT"
    COMPLETION = "COMPLETION"


class InputType(str, Enum):
    TEXT = "text"
    MULTILINE = "multiline"
    NUMBER = "number"
    EMAIL = "email"
    DATE = "date"
    FILE = "file"
    SELECT = "select"
    CHECKBOX = "checkbox"
    TABLE = "table"

    @classmethod
    def _missing_(cls, value):
        if not isinstance(value, str):
            return None
        key = value.strip().lower()
        if key in _INPUT_TYPE_ALIASES:
            return cls(_INPUT_TYPE_ALIASES[key])
        for member in cls:
            if member.value == key:
                return member
        return None


_INPUT_TYPE_ALIASES = {
    "selection": "select",
    "dropdown": "select",
    "file_upload": "file",
    "upload": "file",
    "textarea": "multiline",
    "long_text": "multiline",
}


class ConditionOperator(str, Enum):
    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    EQ = "=="
    NEQ = "!="
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"

    @classmethod
    def _missing_(cls, value):
        if not isinstance(value, str):
            return None
        key = value.strip().lower().replace("_", "").replace(" ", "")
        target = _OPERATOR_ALIASES.get(key)
        return cls(target) if target else None


_OPERATOR_ALIASES = {
    "=": "==",
    "eq": "==",
    "equals": "==",
    "neq": "!=",
    "ne": "!=",
    "notequals": "!=",
    "gt": ">",
    "greaterthan": ">",
    "gte": ">=",
    "lt": "<",
    "lessthan": "<",
    "lte": "<=",
    "contains": "contains",
    "notcontains": "notContains",
    "startswith": "startsWith",
    "endswith": "endsWith",
    "isempty": "isEmpty",
    "isnotempty": "isNotEmpty",
}
