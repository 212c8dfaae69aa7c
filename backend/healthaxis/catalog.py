SPECIALIZATIONS = [
    "Cardiologist",
    "Dermatologist",
    "Endocrinologist",
    "Gastroenterologist",
    "General Physician",
    "Neurologist",
    "Obstetrician",
    "Ophthalmologist",
    "Orthopedist",
    "Pediatrician",
    "Psychiatrist",
    "Pulmonologist",
    "Radiologist",
    "Urologist",
]

# canonical slot order; every slot list the API returns follows it
TIME_SLOTS = [
    "09:00 AM",
    "09:30 AM",
    "10:00 AM",
    "10:30 AM",
    "11:00 AM",
    "11:30 AM",
    "02:00 PM",
    "02:30 PM",
    "03:00 PM",
    "03:30 PM",
    "04:00 PM",
    "04:30 PM",
]

SLOT_MINUTES = 30

DAYS_OF_WEEK = [
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
]

MEDICINES = [
    {"name": "Amoxicillin", "category": "Antibiotic", "forms": ["Tablet", "Capsule", "Suspension"]},
    {"name": "Ibuprofen", "category": "Pain Relief", "forms": ["Tablet", "Suspension"]},
    {"name": "Omeprazole", "category": "Antacid", "forms": ["Capsule"]},
    {"name": "Metformin", "category": "Diabetes", "forms": ["Tablet"]},
    {"name": "Amlodipine", "category": "Blood Pressure", "forms": ["Tablet"]},
    {"name": "Cetirizine", "category": "Antihistamine", "forms": ["Tablet", "Syrup"]},
    {"name": "Paracetamol", "category": "Pain Relief", "forms": ["Tablet", "Syrup"]},
    {"name": "Azithromycin", "category": "Antibiotic", "forms": ["Tablet"]},
    {"name": "Metoprolol", "category": "Blood Pressure", "forms": ["Tablet"]},
    {"name": "Sertraline", "category": "Antidepressant", "forms": ["Tablet"]},
]

MEDICINE_TIMINGS = [
    "Before breakfast",
    "After breakfast",
    "Before lunch",
    "After lunch",
    "Before dinner",
    "After dinner",
    "Bedtime",
]

BLOOD_TEST_TYPES = [
    "Complete Blood Count (CBC)",
    "Basic Metabolic Panel",
    "Comprehensive Metabolic Panel",
    "Lipid Panel",
    "Thyroid Function",
    "HbA1c",
    "Liver Function",
    "Kidney Function",
    "Vitamin D",
    "Iron Studies",
]


def search_medicines(term: str):
    term = (term or "").strip().lower()
    if not term:
        return []
    return [m for m in MEDICINES if term in m["name"].lower()]
