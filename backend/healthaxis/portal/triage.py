"""
Keyword tables behind the assistant's offline answers.

``map_predictions`` turns image-classifier labels (the classifier runs on the
client) into candidate conditions; ``analyze_symptoms`` does the same for
free text. Both are lookups, not diagnoses, and every answer says so.
"""
from typing import Dict, Iterable, List

# classifier label keywords per visible-condition category
MEDICAL_IMAGE_MAPPINGS = {
    "skin": ["dermatitis", "rash", "skin", "dermis", "epidermis", "lesion", "mole"],
    "rash": ["rash", "hives", "allergic reaction", "skin condition", "eczema", "psoriasis"],
    "wound": ["wound", "cut", "injury", "laceration", "abrasion", "scar"],
    "bandage": ["bandage", "dressing", "gauze", "medical tape", "cast", "splint"],
    "swelling": ["swelling", "edema", "inflammation", "bump", "lump"],
    "bruise": ["bruise", "contusion", "black and blue", "hematoma"],
    "burn": ["burn", "scald", "thermal injury", "blister"],
    "eye": ["eye", "conjunctivitis", "pink eye", "vision", "cataract", "stye"],
    "infection": ["infection", "bacterial", "fungal", "pus", "abscess"],
    "inflammation": ["inflammation", "swollen", "red", "tender"],
    "joint": ["joint", "arthritis", "swollen joint", "knee", "elbow", "ankle"],
    "dental": ["tooth", "gum", "dental", "oral", "mouth"],
    "nail": ["nail", "fungal", "ingrown", "nail bed"],
    "hair": ["hair", "scalp", "alopecia", "baldness"],
}

# categories without an entry here report the category itself
MEDICAL_CONDITIONS = {
    "rash": ["Eczema", "Psoriasis", "Contact dermatitis"],
    "skin": ["Melanoma", "Basal cell carcinoma", "Acne"],
    "eye": ["Conjunctivitis", "Cataract", "Glaucoma"],
    "wound": ["Infection", "Diabetic ulcer", "Trauma"],
    "swelling": ["Edema", "Inflammation", "Allergic reaction"],
}

SYMPTOMS_DATABASE = {
    "headache": ["Migraine", "Tension headache", "Sinusitis"],
    "fever": ["Common cold", "Flu", "COVID-19"],
    "cough": ["Bronchitis", "Common cold", "COVID-19"],
    "rash": ["Eczema", "Allergic reaction", "Contact dermatitis"],
    "fatigue": ["Anemia", "Depression", "Chronic fatigue syndrome"],
    "nausea": ["Gastroenteritis", "Food poisoning", "Morning sickness"],
    "dizziness": ["Vertigo", "Low blood pressure", "Inner ear infection"],
    "chest pain": ["Angina", "Heartburn", "Muscle strain"],
    "joint pain": ["Arthritis", "Gout", "Fibromyalgia"],
    "abdominal pain": ["Gastritis", "Appendicitis", "IBS"],
}

IMAGE_KEYWORDS = ["upload", "image", "picture", "photo", "send", "share"]

MAX_RESULTS = 3

UPLOAD_HINT = (
    "You can upload an image of the affected area and I can help analyze visible medical "
    "conditions like rashes, wounds, or skin issues. Please note that this is not a substitute "
    "for professional medical advice."
)

NEED_MORE_INFO = (
    "I need more specific information about your symptoms to provide an accurate assessment. "
    "Could you describe what you're experiencing in more detail? You can also upload an image."
)

NO_IMAGE_MATCH = (
    "I couldn't identify any clear medical conditions in this image. For better results:\n\n"
    "• Ensure good lighting\n"
    "• Focus directly on the affected area\n"
    "• Take the photo from multiple angles if needed\n"
    "• Make sure the image is clear and not blurry\n\n"
    "If you're concerned about a condition, please consult a healthcare professional."
)


def map_predictions(predictions: Iterable[Dict]) -> List[Dict]:
    """
    predictions: [{"class_name": str, "probability": float}, ...]
    Returns up to three {"condition", "confidence"} entries, confidence in percent.
    """
    best = {}
    for pred in predictions:
        label = (pred.get("class_name") or "").lower()
        probability = float(pred.get("probability") or 0)
        for category, keywords in MEDICAL_IMAGE_MAPPINGS.items():
            if not any(k in label for k in keywords):
                continue
            specific = MEDICAL_CONDITIONS.get(category, [category.title()])
            for index, condition in enumerate(specific):
                confidence = round(probability * (1 - index * 0.1) * 100, 2)
                if confidence > best.get(condition, -1):
                    best[condition] = confidence

    ranked = sorted(best.items(), key=lambda item: item[1], reverse=True)[:MAX_RESULTS]
    return [{"condition": c, "confidence": conf} for c, conf in ranked]


def describe_image_analysis(analysis: List[Dict]) -> str:
    if not analysis:
        return NO_IMAGE_MATCH
    lines = [f"• {a['condition']} ({a['confidence']}% confidence)" for a in analysis]
    return (
        "Based on the image, these conditions may be worth discussing with a doctor:\n\n"
        + "\n".join(lines)
        + "\n\nThis is not a diagnosis. Please consult a healthcare professional."
    )


def analyze_symptoms(message: str) -> str:
    text = (message or "").lower()
    if any(k in text for k in IMAGE_KEYWORDS):
        return UPLOAD_HINT

    found = [s for s in SYMPTOMS_DATABASE if s in text]
    if not found:
        return NEED_MORE_INFO

    conditions = []
    for symptom in found:
        for condition in SYMPTOMS_DATABASE[symptom]:
            if condition not in conditions:
                conditions.append(condition)

    bullets = "\n".join(f"• {c}" for c in conditions)
    return (
        f"Based on your symptoms, you might be experiencing one of the following conditions:\n\n{bullets}\n\n"
        "Please note that this is not a definitive diagnosis. It's important to consult with a healthcare "
        "professional for an accurate diagnosis and appropriate treatment."
    )
