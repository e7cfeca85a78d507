"""Action type identifiers."""

from enum import Enum


class ActionType(str, Enum):
    """The closed set of step kinds an automation can run."""

    RUN_SCRIPT = "runScript"
    CALL_API = "callAPI"
    SEND_NOTIFICATION = "sendNotification"
    SEND_EMAIL = "sendEmail"
    SEND_SLACK = "sendSlack"
    UPDATE_RECORD = "updateRecord"
    CREATE_RECORD = "createRecord"
    DELETE_RECORD = "deleteRecord"
