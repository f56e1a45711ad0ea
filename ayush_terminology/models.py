from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base

# One row per term in one vocabulary (NAMASTE, ICD-11 TM2, SNOMED CT, LOINC)
class CodeSystemEntry(Base):
    __tablename__ = "codesystem_entry"
    __table_args__ = (UniqueConstraint("system", "code", name="uq_codesystem_entry_system_code"),)
    id = Column(Integer, primary_key=True, index=True)
    system = Column(String, nullable=False, index=True)
    code = Column(String, nullable=False, index=True)
    display = Column(String)
    description = Column(Text)
    category = Column(String)
    semantic_tag = Column(String)
    ayush_system = Column(String)
    component = Column(String)
    active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

# Directed, weighted edge between two entries. Display text is a snapshot
# taken at load time; there is no foreign key to codesystem_entry.
class ConceptMap(Base):
    __tablename__ = "concept_map"
    __table_args__ = (UniqueConstraint("source_code", "target_code", name="uq_concept_map_source_target"),)
    map_id = Column(Integer, primary_key=True, index=True)
    source_system = Column(String, nullable=False, default="NAMASTE")
    source_code = Column(String, nullable=False, index=True)
    source_display = Column(String)
    target_system = Column(String, nullable=False, default="ICD11")
    target_code = Column(String, nullable=False)
    target_display = Column(String)
    confidence = Column(Float)
    equivalence = Column(String, nullable=False, default="related")
    method = Column(String)
    status = Column(String, nullable=False, default="pending")
    evidence = Column(Text)
    references_resolved = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

# A saved clinical encounter: patient, diagnoses and the bundle built from them
class DiagnosisSession(Base):
    __tablename__ = "diagnosis_session"
    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(String, nullable=False, index=True)
    patient_name = Column(String)
    patient_gender = Column(String)
    patient_birth_date = Column(String)
    clinician_id = Column(String, nullable=False)
    clinician_name = Column(String)
    session_title = Column(String)
    chief_complaint = Column(Text)
    total_codes = Column(Integer, nullable=False, default=0)
    confidence_score = Column(Float)
    fhir_bundle = Column(JSON)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    entries = relationship(
        "DiagnosisEntry", back_populates="session", order_by="DiagnosisEntry.position", cascade="all, delete-orphan"
    )

class DiagnosisEntry(Base):
    __tablename__ = "diagnosis_entry"
    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("diagnosis_session.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    namaste_code = Column(String, nullable=False)
    namaste_display = Column(String)
    icd11_code = Column(String)
    icd11_display = Column(String)
    confidence_score = Column(Float)
    mapping_source = Column(String)
    clinical_notes = Column(Text)
    clinical_status = Column(String, nullable=False, default="active")
    recorded_at = Column(DateTime(timezone=True), server_default=func.now())
    session = relationship("DiagnosisSession", back_populates="entries")

# Bundles accepted through POST /fhir/Bundle
class StoredBundle(Base):
    __tablename__ = "fhir_bundle"
    id = Column(Integer, primary_key=True, index=True)
    bundle_id = Column(String, nullable=False, unique=True)
    bundle_type = Column(String, nullable=False)
    entry_count = Column(Integer, nullable=False, default=0)
    resource = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
