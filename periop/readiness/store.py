"""SQLite-backed storage for patient risk profiles."""

import json
import logging
import os
import uuid
from datetime import datetime

from ..config import config
from ..db import connect, ensure_parent_dir
from ..errors import NotFoundError, ValidationError
from .models import PatientRiskProfile, RiskAssessment

logger = logging.getLogger(__name__)


RISK_PROFILE_SCHEMA = """
CREATE TABLE IF NOT EXISTS risk_profiles (
    id TEXT PRIMARY KEY,
    surgery_id TEXT NOT NULL,
    patient_id TEXT NOT NULL,

    -- Raw input and per-scale results (JSON)
    factors TEXT NOT NULL,
    results TEXT NOT NULL,

    -- Denormalised composite for querying
    dvt_score INTEGER,
    bleeding_score INTEGER,
    braden_score INTEGER,
    nutritional_band TEXT,
    final_score REAL,
    fitness_category TEXT NOT NULL,
    asa_class TEXT,
    incomplete INTEGER NOT NULL DEFAULT 0,

    assessed_by TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_risk_profiles_surgery ON risk_profiles(surgery_id, created_at);
CREATE INDEX IF NOT EXISTS idx_risk_profiles_patient ON risk_profiles(patient_id);
"""


class RiskProfileStore:
    """Stores each assessment as a new row; existing profiles are never edited."""

    def __init__(self, db_path: str | None = None):
        """Initialize risk profile store.

        Args:
            db_path: Path to SQLite database. Defaults to PERIOP_RISK_DB_PATH env var
                     or ~/.periop/risk_profiles.db
        """
        self.db_path = os.path.expanduser(db_path) if db_path else config.RISK_DB_PATH

        ensure_parent_dir(self.db_path)
        self._init_db()

    def _init_db(self) -> None:
        conn = connect(self.db_path)
        try:
            conn.executescript(RISK_PROFILE_SCHEMA)
        finally:
            conn.close()

    def _generate_id(self) -> str:
        return f"RP-{uuid.uuid4().hex[:10].upper()}"

    def save_profile(
        self,
        surgery_id: str,
        patient_id: str,
        assessment: RiskAssessment,
        assessed_by: str | None = None,
    ) -> PatientRiskProfile:
        """Persist an assessment as a new profile for the surgery.

        Args:
            surgery_id: Scheduled surgery the profile annotates
            patient_id: Patient the factors were taken from
            assessment: Computed RiskAssessment
            assessed_by: Staff id of the assessor

        Returns:
            The created PatientRiskProfile

        Raises:
            ValidationError: if surgery_id or patient_id is empty
        """
        if not surgery_id or not patient_id:
            raise ValidationError("surgery_id and patient_id are required")

        profile_id = self._generate_id()
        now = datetime.now()
        factors = assessment.factors.to_dict()
        results = {kind.value: result.to_dict() for kind, result in assessment.results.items()}
        composite = assessment.composite

        conn = connect(self.db_path)
        try:
            conn.execute(
                """
                INSERT INTO risk_profiles (
                    id, surgery_id, patient_id, factors, results,
                    dvt_score, bleeding_score, braden_score, nutritional_band,
                    final_score, fitness_category, asa_class, incomplete,
                    assessed_by, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    profile_id, surgery_id, patient_id,
                    json.dumps(factors), json.dumps(results),
                    results["dvt"]["score"], results["bleeding"]["score"],
                    results["pressure_sore"]["score"],
                    composite.nutritional_band.value if composite.nutritional_band else None,
                    composite.final_score, composite.fitness_category.value,
                    composite.asa_class.value if composite.asa_class else None,
                    int(composite.incomplete), assessed_by, now.isoformat(),
                ),
            )
        finally:
            conn.close()

        logger.info(
            f"Saved risk profile {profile_id} for surgery {surgery_id} "
            f"(fitness {composite.fitness_category.value}, incomplete={composite.incomplete})"
        )

        return PatientRiskProfile(
            id=profile_id,
            surgery_id=surgery_id,
            patient_id=patient_id,
            factors=factors,
            results=results,
            final_score=composite.final_score,
            fitness_category=composite.fitness_category.value,
            asa_class=composite.asa_class.value if composite.asa_class else None,
            incomplete=composite.incomplete,
            assessed_by=assessed_by,
            created_at=now,
        )

    def get_profile(self, profile_id: str) -> PatientRiskProfile:
        """Get a profile by ID.

        Raises:
            NotFoundError: if no such profile exists
        """
        conn = connect(self.db_path)
        try:
            row = conn.execute(
                "SELECT * FROM risk_profiles WHERE id = ?", (profile_id,)
            ).fetchone()
        finally:
            conn.close()

        if row is None:
            raise NotFoundError(f"Risk profile {profile_id} not found")
        return PatientRiskProfile.from_row(row)

    def latest_for_surgery(self, surgery_id: str) -> PatientRiskProfile | None:
        """Most recent profile for a surgery, or None if never assessed."""
        conn = connect(self.db_path)
        try:
            row = conn.execute(
                """
                SELECT * FROM risk_profiles
                WHERE surgery_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (surgery_id,),
            ).fetchone()
        finally:
            conn.close()

        return PatientRiskProfile.from_row(row) if row else None

    def list_for_surgery(self, surgery_id: str) -> list[PatientRiskProfile]:
        """All profiles for a surgery, oldest first."""
        conn = connect(self.db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM risk_profiles WHERE surgery_id = ? ORDER BY created_at ASC, rowid ASC",
                (surgery_id,),
            ).fetchall()
        finally:
            conn.close()

        return [PatientRiskProfile.from_row(row) for row in rows]
