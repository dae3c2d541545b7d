from abc import ABC, abstractmethod
import datetime
from typing import Dict

from motor.motor_asyncio import AsyncIOMotorDatabase

from edo_workflow_service.app.models.enums import DocumentType
from edo_workflow_service.infrastructure.database.document_store import next_sequence_value


class DocumentNumberingStrategy(ABC):
    @abstractmethod
    async def next_number(self, db: AsyncIOMotorDatabase, document_type: str, now: datetime.datetime) -> str:
        """
        Draws the registration number a document receives when it leaves DRAFT.

        Args:
            db: Database holding the sequence counters.
            document_type: The DocumentType value of the document being sent.
            now: Send time; numbering restarts every calendar year.

        Returns:
            The formatted number, e.g. "STC-2024-0007".
        """
        pass


class YearlySequenceNumberingStrategy(DocumentNumberingStrategy):
    """PREFIX-YEAR-NNNN with one counter per (prefix, year)."""

    PREFIXES: Dict[str, str] = {
        DocumentType.CERTIFICATE.value: "CERT",
        DocumentType.ORDER.value: "ORD",
        DocumentType.CONTRACT.value: "CTR",
        DocumentType.STUDENT_CERTIFICATE.value: "STC",
        DocumentType.ENROLLMENT_ORDER.value: "ENR",
        DocumentType.ADMINISTRATIVE_ORDER.value: "ADM",
        DocumentType.FINANCIAL_CONTRACT.value: "FIN",
        DocumentType.ACADEMIC_TRANSCRIPT.value: "TRN",
    }
    DEFAULT_PREFIX = "DOC"

    def prefix_for(self, document_type: str) -> str:
        return self.PREFIXES.get(DocumentType(document_type).value, self.DEFAULT_PREFIX)

    async def next_number(self, db: AsyncIOMotorDatabase, document_type: str, now: datetime.datetime) -> str:
        prefix = self.prefix_for(document_type)
        seq = await next_sequence_value(db, f"{prefix}-{now.year}")
        return f"{prefix}-{now.year}-{seq:04d}"


def get_numbering_strategy(document_type: str) -> DocumentNumberingStrategy:
    # Every type shares the yearly scheme; only the prefix differs
    return YearlySequenceNumberingStrategy()
