from dataclasses import dataclass, field
from typing import List, Optional

MAX_LOGS = 200


@dataclass
class StatusStore:
    last_action: Optional[str] = None
    last_error_code: Optional[str] = None
    last_error: Optional[str] = None
    logs: List[str] = field(default_factory=list)

    def set_error(self, code: str, message: str):
        self.last_error_code = code
        self.last_error = message

    def clear_error(self):
        self.last_error_code = None
        self.last_error = None

    def log(self, msg: str):
        self.logs.append(msg)
        if len(self.logs) > MAX_LOGS:
            self.logs = self.logs[-MAX_LOGS:]
