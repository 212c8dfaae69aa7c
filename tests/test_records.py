import pytest

from healthaxis import storage
from healthaxis.portal import records, slots
from healthaxis.schemas import MedicalRecordRequest, MedicationUpdate, PrescriptionRequest


def _prescription(patient, appointment_id=None, **extra):
    fields = dict(
        patient_id=patient["id"],
        appointment_id=appointment_id,
        medicines=[
            {"name": "Amoxicillin", "dosage": "500mg", "frequency": "3x daily", "duration": "7 days", "timing": ["morning", "night"]},
            {"name": "Ibuprofen", "dosage": "200mg", "frequency": "as needed"},
        ],
        instructions="Take with food",
    )
    fields.update(extra)
    return PrescriptionRequest(**fields)


def test_prescription_needs_a_medicine(patient):
    with pytest.raises(ValueError):
        PrescriptionRequest(patient_id=patient["id"], medicines=[])


def test_prescribe_writes_record_medications_and_appointment(doctor, patient, future_day):
    appt = slots.book_appointment(patient["id"], doctor["id"], future_day.isoformat(), "09:00 AM")["appointment"]

    res = records.prescribe(doctor, _prescription(patient, appt["id"]))
    assert res["ok"]

    recs = records.list_records(patient["id"], "prescription")
    assert len(recs) == 1
    assert recs[0]["title"] == "Prescription"
    assert recs[0]["details"]["prescription"]["instructions"] == "Take with food"

    meds = records.list_medications(patient["id"])
    assert [m["name"] for m in meds] == ["Amoxicillin", "Ibuprofen"]
    assert meds[0]["timing"] == ["morning", "night"]

    stored = storage.find_item(storage.APPOINTMENTS, appt["id"])
    assert stored["prescription"]["id"] == res["prescription"]["id"]


def test_prescribe_rejects_someone_elses_appointment(doctor, other_doctor, patient, future_day):
    appt = slots.book_appointment(patient["id"], doctor["id"], future_day.isoformat(), "09:00 AM")["appointment"]
    res = records.prescribe(other_doctor, _prescription(patient, appt["id"]))
    assert res["forbidden"]
    assert storage.get_collection(storage.MEDICATIONS) == []


def test_prescribe_for_unknown_patient(doctor):
    res = records.prescribe(doctor, PrescriptionRequest(patient_id="nobody", medicines=[{"name": "Aspirin"}]))
    assert res["error"] == "Patient not found"


def test_prescribed_medicines_are_deduplicated(doctor, patient, future_day):
    appt = slots.book_appointment(patient["id"], doctor["id"], future_day.isoformat(), "09:00 AM")["appointment"]
    records.prescribe(doctor, _prescription(patient, appt["id"]))
    records.prescribe(doctor, _prescription(patient))

    names = [(m["name"], m["dosage"]) for m in records.prescribed_medicines(patient["id"])]
    assert names == [("Amoxicillin", "500mg"), ("Ibuprofen", "200mg")]


def test_records_filter_and_newest_first(ticking_clock, doctor, patient):
    records.add_record(doctor, MedicalRecordRequest(patient_id=patient["id"], type="diagnosis", details={"diagnosis": "Flu"}))
    records.add_record(doctor, MedicalRecordRequest(patient_id=patient["id"], type="blood_test", details={"test_type": "Lipid Panel"}))

    everything = records.list_records(patient["id"], "all")
    assert [r["type"] for r in everything] == ["blood_test", "diagnosis"]
    assert everything[0]["title"] == "Blood Test Results"
    assert [r["type"] for r in records.list_records(patient["id"], "diagnosis")] == ["diagnosis"]


def test_only_author_deletes_record(doctor, other_doctor, patient):
    rec = records.add_record(doctor, MedicalRecordRequest(patient_id=patient["id"], type="diagnosis"))["record"]
    assert records.delete_record(other_doctor, rec["id"])["forbidden"]
    assert records.delete_record(doctor, rec["id"])["ok"]
    assert records.list_records(patient["id"]) == []
    assert records.delete_record(doctor, rec["id"])["error"] == "Record not found"


def test_update_and_delete_medication(doctor, other_doctor, patient):
    med = records.prescribe(doctor, _prescription(patient))["medications"][0]

    res = records.update_medication(doctor, med["id"], MedicationUpdate(dosage="250mg", next_dose="2030-01-01T08:00"))
    assert res["medication"]["dosage"] == "250mg"
    assert res["medication"]["name"] == "Amoxicillin"
    assert records.update_medication(other_doctor, med["id"], MedicationUpdate(dosage="1g"))["forbidden"]

    assert records.delete_medication(doctor, med["id"])["ok"]
    assert len(records.list_medications(patient["id"])) == 1


def test_can_view_patient(doctor, patient, other_patient):
    assert records.can_view_patient(doctor, patient["id"])
    assert records.can_view_patient(patient, patient["id"])
    assert not records.can_view_patient(other_patient, patient["id"])
