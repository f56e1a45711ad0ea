"""
Hand-curated mapping tables and static reference arrays.

The NAMASTE -> ICD-11 TM2 alignments are scored as fractions; the
SNOMED-bridged alignments were authored as percentages. Both are
normalized to 0-1 when the concept map is built.
"""
from typing import NamedTuple, Optional


class CuratedMapping(NamedTuple):
    source_code: str
    target_code: str
    confidence: Optional[float]
    equivalence: str
    evidence: Optional[str] = None
    method: Optional[str] = None


NAMASTE_TO_ICD11_TM2 = [
    CuratedMapping("AY001", "SK25.0", 0.92, "related", "Vata neuromuscular imbalance aligns with TM2 movement and coordination disorder patterns."),
    CuratedMapping("AY002", "SP75.2", 0.91, "equivalent", "Pitta inflammatory presentations mirror TM2 heat and fire disorder category."),
    CuratedMapping("AY003", "SP90.1", 0.90, "equivalent", "Kapha stagnation overlaps with TM2 fluid and structural stagnation disorders."),
    CuratedMapping("AY004", "SS81.0", 0.95, "equivalent", "Dual air-fire prakruti corresponds to TM2 air-fire constitutional pattern."),
    CuratedMapping("AY005", "SS82.0", 0.95, "equivalent", "Dual fire-water prakruti aligns with TM2 fire-water constitutional pattern."),
    CuratedMapping("AY006", "SM25.1", 0.93, "equivalent", "Reduced digestive fire directly maps to TM2 digestive weakness classification."),
    CuratedMapping("AY007", "SM25.2", 0.92, "equivalent", "Excessive digestive fire corresponds to TM2 excessive digestive fire pattern."),
    CuratedMapping("AY008", "SM20.0", 0.90, "equivalent", "Central digestive fire imbalance reflects TM2 central digestive disorder category."),
    CuratedMapping("AY009", "SM27.0", 0.88, "related", "Tissue-level metabolic weakness links with TM2 tissue metabolic disorders."),
    CuratedMapping("AY010", "SP96.0", 0.86, "related", "Elemental digestive fire weakness impacts metabolic essence similar to TM2 classification."),
    CuratedMapping("AY011", "SP85.0", 0.90, "equivalent", "Ama toxin accumulation matches TM2 metabolic toxin disorder category."),
    CuratedMapping("AY011", "SQ75.0", 0.84, "related", "Ama formation from exogenous toxins correlates with TM2 artificial toxin disorders."),
    CuratedMapping("AY012", "SP86.1", 0.88, "related", "Toxic Vata presentations overlap with TM2 inflammatory toxic disorders."),
    CuratedMapping("AY012", "SQ76.1", 0.82, "related", "Herbal toxin accumulation in Sama-Vata cases aligns with TM2 plant toxin disorders."),
    CuratedMapping("AY013", "SP75.2", 0.87, "related", "Toxic Pitta heat mirrors TM2 heat and fire disorders with toxic component."),
    CuratedMapping("AY014", "SP90.1", 0.86, "related", "Toxic Kapha stagnation parallels TM2 fluid and structural stagnation disorders."),
    CuratedMapping("AY015", "SP95.0", 0.92, "equivalent", "Ojas depletion reflects TM2 vital essence depletion manifesting as immune weakness."),
    CuratedMapping("AY016", "SP96.0", 0.83, "related", "Excess Tejas impacts metabolic essence similar to TM2 metabolic essence disorders."),
    CuratedMapping("AY017", "SK25.0", 0.88, "related", "Prana Vata disturbance causes neuromuscular findings mapped to TM2 movement disorder."),
    CuratedMapping("AY017", "SM67.0", 0.82, "related", "Prana Vata disturbance weakens musculature aligning with TM2 muscle tissue disorders."),
    CuratedMapping("AY018", "SP97.0", 0.86, "related", "Sadhaka Pitta imbalance contributes to fatigue consistent with TM2 life force depletion."),
    CuratedMapping("AY019", "SM65.0", 0.90, "equivalent", "Tarpaka Kapha deficiency mirrors TM2 plasma and lymph tissue deficiency pattern."),
    CuratedMapping("AY019", "SM69.0", 0.81, "related", "Chronic Tarpaka depletion impacts bone nourishment similar to TM2 bone deficiency disorders."),
    CuratedMapping("AY020", "SM65.0", 0.85, "related", "Rasa dhatu disruption results in plasma deficiency mapped to TM2 plasma tissue disorders."),
    CuratedMapping("AY021", "SP86.1", 0.84, "related", "Excess Rakta with inflammatory toxins aligns with TM2 inflammatory toxic disorders."),
    CuratedMapping("AY021", "SM68.1", 0.80, "related", "Rakta excess with metabolic accumulation parallels TM2 adipose tissue excess presentations."),
]

# Percentage scale
NAMASTE_TO_ICD11_MMS_BRIDGED = [
    CuratedMapping("A001.1", "QA02.Y", 90, "related",
                   "NAMASTE Vata Prakopa -> SNOMED CT Constitutional imbalance -> ICD-11 Constitutional disorder",
                   "snomed_ct_bridge"),
    CuratedMapping("A002.1", "DA90.Z", 85, "related",
                   "NAMASTE Mandagni (weak digestive fire) mapped via SNOMED CT digestive findings to ICD-11 functional dyspepsia",
                   "semantic_bridge_alignment"),
    CuratedMapping("A003.1", "6A00-6E8Z", 95, "equivalent",
                   "NAMASTE Manas Roga directly corresponds to SNOMED CT Mental disorder and ICD-11 Mental disorders",
                   "direct_semantic_bridge"),
]

# Percentage scale
NAMASTE_TO_SNOMED_BRIDGE = [
    CuratedMapping("A001.1", "766988007", 90, "related", "Vata Prakopa presents as a constitutional imbalance.", "snomed_ct_bridge"),
    CuratedMapping("A002.1", "271727006", 85, "related", "Mandagni is recorded as a digestive system finding.", "snomed_ct_bridge"),
    CuratedMapping("A003.1", "74732009", 95, "equivalent", "Manas Roga corresponds to mental disorder.", "snomed_ct_bridge"),
]

SNOMED_CT_SEED = [
    {"code": "762676003", "term": "Assessment of constitutional type", "semantic_tag": "procedure"},
    {"code": "766988007", "term": "Constitutional imbalance", "semantic_tag": "finding"},
    {"code": "118233009", "term": "Finding related to general condition of patient", "semantic_tag": "finding"},
    {"code": "271727006", "term": "Digestive system finding", "semantic_tag": "finding"},
    {"code": "386033004", "term": "Digestive system disorder", "semantic_tag": "disorder"},
    {"code": "162076009", "term": "Excessive appetite", "semantic_tag": "finding"},
    {"code": "79890006", "term": "Loss of appetite", "semantic_tag": "finding"},
    {"code": "74732009", "term": "Mental disorder", "semantic_tag": "disorder"},
    {"code": "48694002", "term": "Anxiety", "semantic_tag": "finding"},
    {"code": "35489007", "term": "Depressive disorder", "semantic_tag": "disorder"},
    {"code": "75934005", "term": "Metabolic syndrome", "semantic_tag": "disorder"},
    {"code": "362969004", "term": "Disorder of metabolism", "semantic_tag": "disorder"},
    {"code": "414027002", "term": "Disorder involving the immune mechanism", "semantic_tag": "disorder"},
    {"code": "50043002", "term": "Disorder of respiratory system", "semantic_tag": "disorder"},
    {"code": "195967001", "term": "Asthma", "semantic_tag": "disorder"},
    {"code": "49601007", "term": "Disorder of cardiovascular system", "semantic_tag": "disorder"},
    {"code": "38341003", "term": "Hypertensive disorder", "semantic_tag": "disorder"},
    {"code": "928000", "term": "Disorder of musculoskeletal system", "semantic_tag": "disorder"},
    {"code": "3723001", "term": "Arthritis", "semantic_tag": "disorder"},
    {"code": "161891005", "term": "Back pain", "semantic_tag": "finding"},
    {"code": "95320005", "term": "Disorder of skin", "semantic_tag": "disorder"},
    {"code": "43116000", "term": "Eczema", "semantic_tag": "disorder"},
    {"code": "9014002", "term": "Psoriasis", "semantic_tag": "disorder"},
    {"code": "118940003", "term": "Disorder of nervous system", "semantic_tag": "disorder"},
    {"code": "25064002", "term": "Headache", "semantic_tag": "finding"},
    {"code": "22253000", "term": "Pain", "semantic_tag": "finding"},
    {"code": "404684003", "term": "Clinical finding", "semantic_tag": "finding"},
]

# 72133-2 appears twice in the source list; the loader keeps the first.
LOINC_SEED = [
    {"code": "72133-2", "term": "Patient constitutional assessment", "component": "Constitutional type", "class": "SURVEY"},
    {"code": "8867-4", "term": "Heart rate", "component": "Heart beat", "class": "VITAL SIGNS"},
    {"code": "8480-6", "term": "Systolic blood pressure", "component": "Systolic blood pressure", "class": "VITAL SIGNS"},
    {"code": "8462-4", "term": "Diastolic blood pressure", "component": "Diastolic blood pressure", "class": "VITAL SIGNS"},
    {"code": "10210-3", "term": "Physical findings of Abdomen", "component": "Abdomen", "class": "EXAM"},
    {"code": "72133-2", "term": "Mental status assessment", "component": "Mental status", "class": "SURVEY"},
    {"code": "44261-6", "term": "Patient Health Questionnaire 9 item total score", "component": "Depression severity", "class": "SURVEY"},
    {"code": "2345-7", "term": "Glucose", "component": "Glucose", "class": "CHEM"},
    {"code": "2093-3", "term": "Cholesterol", "component": "Cholesterol", "class": "CHEM"},
    {"code": "2571-8", "term": "Triglycerides", "component": "Triglyceride", "class": "CHEM"},
    {"code": "6690-2", "term": "Leukocytes", "component": "Leukocytes", "class": "HEMATOLOGY"},
    {"code": "29463-7", "term": "Body weight", "component": "Body weight", "class": "VITAL SIGNS"},
    {"code": "39156-5", "term": "Body mass index", "component": "Body mass index", "class": "VITAL SIGNS"},
    {"code": "71969-0", "term": "Quality of life assessment", "component": "Quality of life", "class": "SURVEY"},
]
