from healthaxis.portal import patients, slots
from healthaxis.schemas import FamilyMemberRequest, HealthMetricRequest, InsuranceRequest


def _metric(**extra):
    fields = dict(blood_pressure="120/80", heart_rate=72, weight=70.5, temperature=36.8, blood_oxygen=98)
    fields.update(extra)
    return HealthMetricRequest(**fields)


def test_health_metrics_keep_history(patient):
    assert patients.get_health_metrics(patient["id"]) is None
    patients.add_health_metric(patient["id"], _metric())
    latest = patients.add_health_metric(patient["id"], _metric(heart_rate=80))

    assert latest["heart_rate"] == 80
    assert [h["heart_rate"] for h in latest["history"]] == [72, 80]
    assert patients.get_health_metrics(patient["id"]) == latest


def test_family_members_crud(patient, other_patient):
    member = patients.add_family_member(patient["id"], FamilyMemberRequest(name="Sam", relationship="brother"))
    assert patients.list_family(patient["id"]) == [member]
    assert patients.list_family(other_patient["id"]) == []

    updated = patients.update_family_member(patient["id"], member["id"], FamilyMemberRequest(name="Sam", relationship="sibling", phone="555"))
    assert updated["relationship"] == "sibling"
    assert patients.update_family_member(patient["id"], "missing", FamilyMemberRequest(name="X", relationship="Y")) is None

    assert patients.delete_family_member(patient["id"], member["id"])
    assert not patients.delete_family_member(patient["id"], member["id"])


def test_insurance_update_keeps_documents(patient):
    from healthaxis import storage

    storage.write_key(storage.user_key(storage.INSURANCE, patient["id"]), {"documents": [{"name": "card.pdf"}]})
    res = patients.update_insurance(patient["id"], InsuranceRequest(provider="Acme", policy_number="P-1", expiry_date="2031-01-01"))
    assert res["documents"] == [{"name": "card.pdf"}]
    assert res["coverage"]["dental"] is False
    assert patients.get_insurance(patient["id"])["provider"] == "Acme"


def test_doctor_sees_only_own_patients(doctor, other_doctor, patient, other_patient, future_day):
    slots.book_appointment(patient["id"], doctor["id"], future_day.isoformat(), "09:00 AM")

    assert [p["id"] for p in patients.patients_for_doctor(doctor)] == [patient["id"]]
    assert patients.patients_for_doctor(doctor, "nobody") == []
    assert patients.patients_for_doctor(other_doctor) == []


def test_patient_overview_history_only_for_doctors(doctor, patient):
    assert "medical_history" in patients.patient_overview(doctor, patient["id"])
    assert "medical_history" not in patients.patient_overview(patient, patient["id"])
    assert patients.patient_overview(doctor, doctor["id"]) is None
