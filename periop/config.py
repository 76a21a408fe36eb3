"""Environment-driven settings for the perioperative engine."""

import os


def _env_path(name: str, default: str) -> str:
    return os.path.expanduser(os.environ.get(name, default))


class Config:
    """Settings read from the environment at attribute access time.

    Stores accept an explicit db_path, so these only supply defaults.
    """

    @property
    def WORKFLOW_DB_PATH(self) -> str:
        # Reviews, prescriptions, decisions and audit share one database so
        # a review transition and its prescription writes commit together.
        return _env_path("PERIOP_WORKFLOW_DB_PATH", "~/.periop/workflow.db")

    @property
    def RISK_DB_PATH(self) -> str:
        return _env_path("PERIOP_RISK_DB_PATH", "~/.periop/risk_profiles.db")

    @property
    def ESCALATION_DB_PATH(self) -> str:
        return _env_path("PERIOP_ESCALATION_DB_PATH", "~/.periop/escalations.db")

    @property
    def APPROVAL_DEADLINE_HOUR(self) -> int:
        """Hour on the day before surgery after which approval is late."""
        return int(os.environ.get("PERIOP_APPROVAL_DEADLINE_HOUR", "18"))

    @property
    def DB_TIMEOUT_SECONDS(self) -> float:
        return float(os.environ.get("PERIOP_DB_TIMEOUT_SECONDS", "10"))

    @property
    def LOG_LEVEL(self) -> str:
        return os.environ.get("PERIOP_LOG_LEVEL", "INFO").upper()


config = Config()
