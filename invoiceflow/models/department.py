"""
InvoiceFlow - Department Hierarchy Model

Department / section / unit rows. The section abbreviation is the
prefix of every project number issued for that section.
"""

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from invoiceflow.models.base import BaseModel


class DepartmentHierarchy(BaseModel):
    """One unit within a section within a department."""

    __tablename__ = "department_hierarchies"

    department_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    department_name: Mapped[str] = mapped_column(String(255), nullable=False)

    section_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    section_name: Mapped[str] = mapped_column(String(255), nullable=False)
    section_abbreviation: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Used as the project number prefix",
    )

    unit_id: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<DepartmentHierarchy(id={self.id}, department={self.department_name}, "
            f"section={self.section_abbreviation})>"
        )
