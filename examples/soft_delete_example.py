#!/usr/bin/env python3
"""
Soft Delete Example - Paranoid Toolkit

Demonstrates the soft delete workflow on a small clinical trial schema:
- Destroying a record and its dependents
- Reading through the including-deleted and deleted-only variants
- Restoring with and without dependents, and restoring a parent explicitly
- Hooks that veto a transition
- Physically deleting rows
"""

import logging

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, create_engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from paranoid_toolkit import ExclusiveScope, ParanoidMixin, ParanoidService, paranoid

Base = declarative_base()


@paranoid()
class ClinicalSite(Base, ParanoidMixin):
    """Clinical trial site; its patients are destroyed with it."""

    __tablename__ = "clinical_sites"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    deleted_at = Column(DateTime)

    patients = relationship(
        "Patient", back_populates="site", cascade="all, delete-orphan"
    )


@paranoid()
class Patient(Base, ParanoidMixin):
    __tablename__ = "patients"

    id = Column(String, primary_key=True)
    site_id = Column(String, ForeignKey("clinical_sites.id"))
    patient_code = Column(String, nullable=False)
    deleted_at = Column(DateTime)

    site = relationship("ClinicalSite", back_populates="patients")
    visits = relationship(
        "PatientVisit", back_populates="patient", cascade="all, delete-orphan"
    )


@paranoid("active", destroyed_value=False, not_destroyed_value=True)
class PatientVisit(Base, ParanoidMixin):
    """Visit records use a boolean flag instead of a timestamp."""

    __tablename__ = "patient_visits"

    id = Column(String, primary_key=True)
    patient_id = Column(String, ForeignKey("patients.id"))
    visit_type = Column(String)
    locked = Column(Boolean, default=False)
    active = Column(Boolean, default=True, nullable=False)

    patient = relationship("Patient", back_populates="visits")

    def before_destroy(self):
        # Locked visits are part of a submitted data set
        return not self.locked


def demonstrate_soft_delete() -> None:
    """Show soft delete functionality."""
    print("🗑️  Soft Delete Example\n")

    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    session = Session()
    service = ParanoidService(session)

    # 1. Create test data
    print("1️⃣ Creating Test Data:")
    site = ClinicalSite(
        id="SITE-001",
        name="City Medical Center",
        patients=[
            Patient(
                id="PAT-001",
                patient_code="CMC-001",
                visits=[
                    PatientVisit(id="VISIT-001", visit_type="screening", locked=True),
                    PatientVisit(id="VISIT-002", visit_type="baseline"),
                ],
            ),
            Patient(id="PAT-002", patient_code="CMC-002"),
        ],
    )
    session.add(site)
    session.commit()
    print(f"  ✓ Created site: {site.name}")
    print(f"  ✓ Created {Patient.count(session)} patients")
    print(f"  ✓ Created {PatientVisit.count(session)} visits\n")

    # 2. Hooks can refuse a transition
    print("2️⃣ Destroying a Locked Visit:")
    locked = PatientVisit.get(session, "VISIT-001")
    print(f"  Destroy result: {locked.destroy()}")
    print(f"  Active visits: {PatientVisit.count(session)}\n")

    # 3. Cascading destroy
    print("3️⃣ Destroying the Site:")
    site.destroy()
    session.commit()
    print(f"  Active sites: {ClinicalSite.count(session)}")
    print(f"  Active patients: {Patient.count(session)}")
    print(f"  Active visits: {PatientVisit.count(session)} (the locked one)")
    print(
        "  Patients including deleted: "
        f"{Patient.variants.count_including_deleted(session)}\n"
    )

    # 4. Reading deleted records
    print("4️⃣ Querying Soft-Deleted Records:")
    for patient in service.find_deleted(Patient):
        print(f"    - {patient.patient_code}: deleted on {patient.deleted_at}")
    with ExclusiveScope(ClinicalSite):
        print(f"  Sites in any state: {ClinicalSite.count(session)}")
    print(f"  Site summary: {service.summarize(ClinicalSite)}\n")

    # 5. Restore a child together with its parent
    print("5️⃣ Restoring a Patient and its Site:")
    patient = Patient.variants.get_including_deleted(session, "PAT-001")
    print(f"  Site seen from patient: {patient.site_including_deleted().name}")
    patient.restore(include="site", include_destroyed_dependents=True)
    session.commit()
    print(f"  Active sites: {ClinicalSite.count(session)}")
    print(f"  Active patients: {Patient.count(session)}")
    print(f"  Active visits: {PatientVisit.count(session)}\n")

    # 6. Restore everything else
    print("6️⃣ Restoring the Rest of the Site:")
    site.restore()
    session.commit()
    print(f"  Active patients: {Patient.count(session)}\n")

    # 7. Physical deletion
    print("7️⃣ Hard Deleting Visits:")
    removed = PatientVisit.delete_all(session, PatientVisit.visit_type == "baseline")
    session.commit()
    print(f"  Rows removed: {removed}")
    print(
        "  Visits including deleted: "
        f"{PatientVisit.variants.count_including_deleted(session)}"
    )

    print("\n✅ Soft delete example completed!")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="  [%(levelname)s] %(message)s")
    demonstrate_soft_delete()
