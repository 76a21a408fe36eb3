"""Tests for the dashboard JSON API."""

ANAESTHETIST = {"id": "U-ANA", "role": "anaesthetist"}
CONSULTANT = {"id": "U-CON", "role": "consultant_anaesthetist", "name": "Dr Bello"}
PHARMACIST = {"id": "U-PHA", "role": "pharmacist"}
NURSE = {"id": "U-RRN", "role": "recovery_room_nurse"}


def submit(client, **overrides):
    body = {
        "actor": ANAESTHETIST,
        "surgery_id": "S-1",
        "patient_id": "P-1",
        "asa_class": "ASA II",
        "prescription": {"medications": [{"name": "Midazolam", "dose": "2mg"}]},
    }
    body.update(overrides)
    return client.post("/api/reviews", json=body)


def test_assess_and_store(client):
    response = client.post("/api/risk/assess", json={
        "surgery_id": "S-1",
        "patient_id": "P-1",
        "fitness_category": "fit",
        "factors": {
            "age": 45,
            "braden": {"sensory_perception": 4, "moisture": 4, "activity": 4,
                       "mobility": 4, "nutrition": 4, "friction_shear": 3},
            "nutritional": {"height_cm": 170, "weight_kg": 70},
        },
    })
    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["data"]["dvt"] == {"score": 1, "band": "low"}
    assert body["data"]["braden"]["band"] == "no_risk"
    assert "warnings" not in body

    latest = client.get("/api/risk/surgery/S-1/latest").get_json()
    assert latest["data"]["id"] == body["data"]["profile_id"]


def test_assess_incomplete_warns(client):
    body = client.post("/api/risk/assess", json={
        "fitness_category": "high_risk", "factors": {"age": 70},
    }).get_json()
    assert body["warnings"] == ["incomplete_input"]
    assert body["data"]["composite"]["final_score"] is None


def test_assess_requires_fitness_category(client):
    response = client.post("/api/risk/assess", json={"factors": {}})
    assert response.status_code == 400
    assert response.get_json()["code"] == "validation_error"


def test_latest_profile_missing(client):
    assert client.get("/api/risk/surgery/S-none/latest").status_code == 404


def test_submit_approve_flow(client):
    response = submit(client)
    assert response.status_code == 201
    data = response.get_json()["data"]
    assert data["status"] == "submitted"

    approved = client.post(f"/api/reviews/{data['review_id']}/approve", json={"actor": CONSULTANT})
    assert approved.status_code == 200
    assert approved.get_json()["data"]["status"] == "approved"

    again = client.post(f"/api/reviews/{data['review_id']}/approve", json={"actor": CONSULTANT})
    assert again.status_code == 409
    assert again.get_json()["code"] == "conflict"

    visible = client.get("/api/prescriptions/visible").get_json()["data"]
    assert [p["id"] for p in visible] == [data["prescription_id"]]


def test_reject_flow(client):
    review_id = submit(client).get_json()["data"]["review_id"]

    bad = client.post(f"/api/reviews/{review_id}/reject", json={
        "actor": CONSULTANT, "reason": "", "corrected_prescription": {"medications": []},
    })
    assert bad.status_code == 400

    response = client.post(f"/api/reviews/{review_id}/reject", json={
        "actor": CONSULTANT,
        "reason": "Wrong premed",
        "corrected_prescription": {"medications": [{"name": "Atropine", "dose": "0.5mg"}]},
    })
    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["status"] == "rejected_with_correction"

    detail = client.get(f"/api/reviews/{review_id}").get_json()["data"]
    assert detail["decision"]["replacement_prescription_id"] == data["new_prescription_id"]


def test_role_gate_returns_403(client):
    review_id = submit(client).get_json()["data"]["review_id"]
    response = client.post(f"/api/reviews/{review_id}/approve", json={"actor": PHARMACIST})
    assert response.status_code == 403
    assert response.get_json()["code"] == "forbidden"


def test_actor_from_headers(client):
    review_id = submit(client).get_json()["data"]["review_id"]
    response = client.post(
        f"/api/reviews/{review_id}/approve",
        headers={"X-Staff-Id": "U-CON", "X-Staff-Role": "consultant_anaesthetist"},
    )
    assert response.status_code == 200


def test_missing_actor_is_validation_error(client):
    response = client.post("/api/reviews", json={"surgery_id": "S-1", "patient_id": "P-1"})
    assert response.status_code == 400


def test_pharmacy_transitions(client):
    data = submit(client).get_json()["data"]
    client.post(f"/api/reviews/{data['review_id']}/approve", json={"actor": CONSULTANT})
    rx = data["prescription_id"]

    packed = client.post(f"/api/prescriptions/{rx}/pack", json={"actor": PHARMACIST})
    assert packed.get_json()["data"]["status"] == "packed"
    dispensed = client.post(f"/api/prescriptions/{rx}/dispense", json={"actor": PHARMACIST})
    assert dispensed.get_json()["data"]["status"] == "dispensed"
    again = client.post(f"/api/prescriptions/{rx}/out-of-stock",
                        json={"actor": PHARMACIST, "items": ["Midazolam"]})
    assert again.status_code == 409


def test_unknown_prescription(client):
    assert client.get("/api/prescriptions/RX-NOPE").status_code == 404


def test_equipment_return_endpoint(client):
    body = {
        "checkout_id": "CO-7",
        "items": [{"equipment_id": "EQ-1", "condition": "faulty"}],
    }
    first = client.post("/api/escalations/equipment-return", json=body).get_json()["data"]
    second = client.post("/api/escalations/equipment-return", json=body).get_json()["data"]
    assert len(first["alert_ids"]) == 1
    assert first["alert_ids"] == second["alert_ids"]


def test_trigger_and_resolve_pacu_alert(client):
    response = client.post("/api/escalations/trigger", json={
        "actor": NURSE,
        "trigger_type": "pacu_red_alert",
        "entity_id": "S-1",
        "alert_type": "haemodynamic",
        "description": "BP 70/40",
    })
    assert response.status_code == 201
    alert_id = response.get_json()["data"]["alert_ids"][0]

    manager = {"actor": {"id": "U-TM", "role": "theatre_manager"}}
    ack = client.post(f"/api/escalations/{alert_id}/acknowledge", json=manager)
    assert ack.get_json()["data"]["status"] == "acknowledged"

    resolved = client.post(f"/api/escalations/{alert_id}/resolve",
                           json={**manager, "resolution_notes": "Fluids given"})
    assert resolved.get_json()["data"]["status"] == "resolved"

    flag = client.get("/api/escalations/flags/surgery/S-1").get_json()["data"]
    assert flag["red_alert_triggered"] is True


def test_trigger_unknown_type(client):
    response = client.post("/api/escalations/trigger", json={"trigger_type": "fire"})
    assert response.status_code == 400


def test_trigger_pacu_with_minimal_body(client):
    """entity_id, trigger_type, description and severity are enough."""
    response = client.post(
        "/api/escalations/trigger",
        headers={"X-Staff-Id": "U-RRN", "X-Staff-Role": "recovery_room_nurse"},
        json={"entity_id": "S-1", "trigger_type": "pacu_red_alert",
              "description": "Desaturation", "severity": "high"},
    )
    assert response.status_code == 201
    alert_id = response.get_json()["data"]["alert_id"]

    alert = client.get(f"/api/escalations/{alert_id}").get_json()["data"]
    assert alert["entity_id"] == "S-1"
    assert alert["severity"] == "high"
    assert alert["context"]["alert_type"] == "pacu_red_alert"


def test_trigger_equipment_fault_with_minimal_body(client):
    body = {"entity_id": "EQ-5", "trigger_type": "EQUIPMENT_FAULT",
            "description": "Cracked blade", "severity": "critical"}
    first = client.post("/api/escalations/trigger", json=body)
    second = client.post("/api/escalations/trigger", json=body)

    assert first.status_code == 201
    assert first.get_json()["data"]["alert_id"] != second.get_json()["data"]["alert_id"]
    alerts = client.get("/api/escalations", query_string={"entity_id": "EQ-5"}).get_json()["data"]
    assert len(alerts) == 2
    assert {a["priority"] for a in alerts} == {"critical"}


def test_assess_accepts_upper_case_fitness_category(client):
    body = client.post("/api/risk/assess", json={
        "fitness_category": "FIT_WITH_PRECAUTIONS", "factors": {"age": 50},
    }).get_json()
    assert body["data"]["composite"]["fitness_category"] == "fit_with_precautions"


def test_assess_malformed_factor_is_400(client):
    response = client.post("/api/risk/assess", json={
        "fitness_category": "fit", "factors": {"age": "seventy"},
    })
    assert response.status_code == 400
    assert response.get_json()["code"] == "validation_error"


def test_assess_string_booleans(client):
    body = client.post("/api/risk/assess", json={
        "fitness_category": "fit", "factors": {"age": "30", "dvt": {"major_surgery": "false"}},
    }).get_json()
    assert body["data"]["dvt"]["score"] == 0


def test_submit_malformed_quantity_is_400(client):
    response = submit(client, prescription={
        "medications": [{"name": "Midazolam", "dose": "2mg", "quantity": "two"}],
    })
    assert response.status_code == 400
    assert response.get_json()["code"] == "validation_error"
