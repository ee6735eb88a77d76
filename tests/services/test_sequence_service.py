"""
Tests for SequenceService document numbering.
"""

from stock_kernel.services.sequence_service import SequenceService


class TestDocumentNumbers:

    def test_monotonic(self, session):
        sequences = SequenceService(session)

        numbers = [sequences.next_document_number("NCR", 2025) for _ in range(3)]

        assert numbers == ["NCR-2025-001", "NCR-2025-002", "NCR-2025-003"]

    def test_partition_per_prefix_and_year(self, session):
        sequences = SequenceService(session)

        sequences.next_document_number("NCR", 2025)
        sequences.next_document_number("NCR", 2025)

        assert sequences.next_document_number("NCR", 2026) == "NCR-2026-001"
        assert sequences.next_document_number("DEL", 2025) == "DEL-2025-001"
        assert sequences.current_value("NCR-2025") == 2

    def test_width_grows_past_999(self, session):
        sequences = SequenceService(session)
        for _ in range(999):
            sequences.next_value("ISS-2025")

        assert sequences.next_document_number("ISS", 2025) == "ISS-2025-1000"

    def test_unknown_sequence(self, session):
        assert SequenceService(session).current_value("TRF-2025") is None
