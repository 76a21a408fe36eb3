#!/usr/bin/env python3
"""Drive demo scenarios through a running perioperative dashboard API.

Creates risk profiles, reviews and escalations so the pharmacy queue and
alert lists have something in them.

Usage:
    # Start the API first
    python -m dashboard.app

    # Review approved, prescription released to pharmacy and packed
    python demo_periop.py --scenario approve-and-pack

    # Review rejected with a corrected prescription
    python demo_periop.py --scenario reject-with-correction

    # Two consultants approving the same review at once
    python demo_periop.py --scenario double-approve

    # Faulty equipment on return, submitted twice
    python demo_periop.py --scenario equipment-fault

    # Recovery room red alert, acknowledged and resolved
    python demo_periop.py --scenario pacu-red-alert

    # Run everything / list scenarios
    python demo_periop.py --all
    python demo_periop.py --list
"""

import argparse
import sys
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta

import requests

DEFAULT_BASE_URL = "http://localhost:8082"

ANAESTHETIST = {"id": "demo-ana", "role": "anaesthetist", "name": "Dr Demo Registrar"}
CONSULTANT = {"id": "demo-con", "role": "consultant_anaesthetist", "name": "Dr Demo Consultant"}
CONSULTANT_2 = {"id": "demo-con-2", "role": "consultant_anaesthetist", "name": "Dr Second Consultant"}
PHARMACIST = {"id": "demo-pha", "role": "pharmacist", "name": "Demo Pharmacist"}
NURSE = {"id": "demo-rrn", "role": "recovery_room_nurse", "name": "Demo PACU Nurse"}
THEATRE_MANAGER = {"id": "demo-tm", "role": "theatre_manager", "name": "Demo Theatre Manager"}

# ============================================================================
# PREDEFINED PATIENTS
# ============================================================================
ELDERLY_HIP = {
    "age": 78,
    "dvt": {"major_surgery": True, "immobilization": True},
    "bleeding": {"anticoagulants": True, "renal_impairment": True},
    "braden": {"sensory_perception": 3, "moisture": 3, "activity": 2,
               "mobility": 2, "nutrition": 2, "friction_shear": 2},
    "nutritional": {"height_cm": 158, "weight_kg": 44, "albumin_gdl": 3.1,
                    "lymphocytes_per_ul": 1300, "weight_loss": True},
}

HEALTHY_ADULT = {
    "age": 34,
    "braden": {"sensory_perception": 4, "moisture": 4, "activity": 4,
               "mobility": 4, "nutrition": 4, "friction_shear": 3},
    "nutritional": {"height_cm": 175, "weight_kg": 72, "albumin_gdl": 4.2,
                    "lymphocytes_per_ul": 2200},
}


class DemoClient:
    """Thin wrapper over the dashboard's JSON envelope."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")

    def post(self, path, body, expect_ok=True):
        response = requests.post(f"{self.base_url}{path}", json=body, timeout=10)
        payload = response.json()
        if expect_ok and not payload.get("success"):
            raise RuntimeError(f"POST {path} failed ({response.status_code}): {payload.get('error')}")
        return response.status_code, payload

    def get(self, path, params=None):
        response = requests.get(f"{self.base_url}{path}", params=params, timeout=10)
        response.raise_for_status()
        return response.json()["data"]


def _surgery_id():
    return f"SURG-{uuid.uuid4().hex[:6].upper()}"


def _assess_and_submit(client, factors, fitness_category, medications, urgency="routine",
                       days_until_surgery=3):
    surgery_id = _surgery_id()
    patient_id = f"PAT-{uuid.uuid4().hex[:6].upper()}"

    _, assessed = client.post("/api/risk/assess", {
        "surgery_id": surgery_id,
        "patient_id": patient_id,
        "fitness_category": fitness_category,
        "asa_class": "ASA III" if fitness_category != "fit" else "ASA I",
        "factors": factors,
        "assessed_by": ANAESTHETIST["id"],
    })
    data = assessed["data"]
    print(f"  Risk: DVT {data['dvt']['band']}, bleeding {data['bleeding']['band']}, "
          f"Braden {data['braden']['band']}, nutrition {data['nutritional']['band']}, "
          f"composite {data['composite']['final_score']}")

    _, submitted = client.post("/api/reviews", {
        "actor": ANAESTHETIST,
        "surgery_id": surgery_id,
        "patient_id": patient_id,
        "scheduled_surgery_date": (date.today() + timedelta(days=days_until_surgery)).isoformat(),
        "proposed_anesthesia_type": "general",
        "risk_profile_id": data.get("profile_id"),
        "prescription": {"medications": medications, "urgency": urgency},
    })
    review = submitted["data"]
    print(f"  Review {review['review_id']} submitted with prescription {review['prescription_id']}")
    return review


def scenario_approve_and_pack(client):
    review = _assess_and_submit(
        client, HEALTHY_ADULT, "fit",
        [{"name": "Midazolam", "dose": "2mg", "route": "IV", "timing": "pre-induction"}],
    )
    client.post(f"/api/reviews/{review['review_id']}/approve", {"actor": CONSULTANT})
    print("  Approved; pharmacy queue now holds:",
          [p["id"] for p in client.get("/api/prescriptions/visible")])

    rx = review["prescription_id"]
    client.post(f"/api/prescriptions/{rx}/pack", {"actor": PHARMACIST, "packing_notes": "Tray A"})
    _, dispensed = client.post(f"/api/prescriptions/{rx}/dispense", {"actor": PHARMACIST})
    print(f"  Prescription {rx} -> {dispensed['data']['status']}")


def scenario_reject_with_correction(client):
    review = _assess_and_submit(
        client, ELDERLY_HIP, "high_risk",
        [{"name": "Midazolam", "dose": "5mg", "route": "IV"}],
        urgency="urgent",
    )
    _, rejected = client.post(f"/api/reviews/{review['review_id']}/reject", {
        "actor": CONSULTANT,
        "reason": "Benzodiazepine dose too high for age; use atropine only",
        "corrected_prescription": {
            "medications": [{"name": "Atropine", "dose": "0.5mg", "route": "IV"}],
            "urgency": "urgent",
        },
    })
    data = rejected["data"]
    print(f"  Rejected; replacement {data['new_prescription_id']} supersedes "
          f"{data['superseded_prescription_ids']}")
    visible = [p["id"] for p in client.get("/api/prescriptions/visible")]
    print(f"  Original visible to pharmacy: {review['prescription_id'] in visible}; "
          f"replacement visible: {data['new_prescription_id'] in visible}")


def scenario_double_approve(client):
    review = _assess_and_submit(
        client, HEALTHY_ADULT, "fit", [{"name": "Ondansetron", "dose": "4mg"}],
    )
    path = f"/api/reviews/{review['review_id']}/approve"
    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(
            lambda actor: client.post(path, {"actor": actor}, expect_ok=False),
            [CONSULTANT, CONSULTANT_2],
        ))
    for status, payload in results:
        print(f"  HTTP {status}: {payload.get('data', {}).get('status') or payload.get('code')}")


def scenario_equipment_fault(client):
    checkout_id = f"CHK-{uuid.uuid4().hex[:6].upper()}"
    body = {
        "checkout_id": checkout_id,
        "reported_by": "demo-store",
        "items": [
            {"equipment_id": "EQ-LARYNGO-01", "name": "Laryngoscope", "condition": "good"},
            {"equipment_id": "EQ-SUCTION-03", "name": "Suction unit", "condition": "faulty",
             "fault_description": "No vacuum at max setting"},
            {"equipment_id": "EQ-PUMP-07", "name": "Infusion pump", "condition": "damaged",
             "fault_description": "Cracked housing", "fault_severity": "critical"},
        ],
    }
    _, first = client.post("/api/escalations/equipment-return", body)
    _, second = client.post("/api/escalations/equipment-return", body)
    print(f"  First submission alerts: {first['data']['alert_ids']}")
    print(f"  Re-submission alerts:    {second['data']['alert_ids']} (same, nothing new)")


def scenario_pacu_red_alert(client):
    surgery_id = _surgery_id()
    _, raised = client.post("/api/escalations/trigger", {
        "actor": NURSE,
        "trigger_type": "pacu_red_alert",
        "entity_id": surgery_id,
        "alert_type": "airway",
        "description": "SpO2 84% on 6L, stridor",
        "severity": "critical",
        "surgeon_id": "demo-sur",
        "anaesthetist_id": ANAESTHETIST["id"],
    })
    alert_id = raised["data"]["alert_ids"][0]
    print(f"  Red alert {alert_id} raised for {surgery_id}")

    client.post(f"/api/escalations/{alert_id}/acknowledge", {"actor": THEATRE_MANAGER})
    client.post(f"/api/escalations/{alert_id}/resolve", {
        "actor": THEATRE_MANAGER,
        "resolution_notes": "Anaesthetist attended, airway secured",
    })
    flag = client.get(f"/api/escalations/flags/surgery/{surgery_id}")
    print(f"  Resolved; surgery flag red_alert_triggered={flag['red_alert_triggered']}")


SCENARIOS = {
    "approve-and-pack": ("Review approved, packed and dispensed", scenario_approve_and_pack),
    "reject-with-correction": ("Review rejected with corrected prescription", scenario_reject_with_correction),
    "double-approve": ("Concurrent approvals, one conflicts", scenario_double_approve),
    "equipment-fault": ("Faulty equipment return, deduplicated", scenario_equipment_fault),
    "pacu-red-alert": ("PACU red alert lifecycle", scenario_pacu_red_alert),
}


def main():
    parser = argparse.ArgumentParser(description="Run perioperative demo scenarios")
    parser.add_argument("--base-url", default=DEFAULT_BASE_URL, help="Dashboard API base URL")
    parser.add_argument("--scenario", choices=sorted(SCENARIOS), help="Scenario to run")
    parser.add_argument("--all", action="store_true", help="Run every scenario")
    parser.add_argument("--list", action="store_true", help="List scenarios")
    args = parser.parse_args()

    if args.list:
        for name, (description, _) in SCENARIOS.items():
            print(f"  {name:<24} {description}")
        return 0

    names = list(SCENARIOS) if args.all else [args.scenario] if args.scenario else []
    if not names:
        parser.print_help()
        return 1

    client = DemoClient(args.base_url)
    for name in names:
        description, run = SCENARIOS[name]
        print(f"\n=== {description} ===")
        try:
            run(client)
        except requests.RequestException as e:
            print(f"  Could not reach {args.base_url}: {e}")
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
