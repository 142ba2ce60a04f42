"""
Tests for the Description Synthesizer and the description update service.
"""

import unittest
from datetime import date, datetime, timedelta
from typing import Optional
from unittest.mock import Mock

from surgery_registry.core.data_models import MatchKind, MatchOutcome, PatientRecord, RawEvent
from surgery_registry.core.description_service import (
    AMBIGUITY_DISCLAIMER,
    AUTOMATION_END_MARKER,
    AUTOMATION_SIGNATURE,
    AUTOMATION_START_MARKER,
    DescriptionContext,
    DescriptionUpdateService,
    find_prior_controls,
    merge_description,
    split_automation_block,
    strip_automation_block,
    synthesize_description,
    wrap_block
)
from surgery_registry.core.exceptions import UpstreamFetchError

VISIT_DAY = date(2025, 2, 1)


def event(event_id: str, title: str, start: str, description: Optional[str] = None) -> RawEvent:
    start_dt = datetime.fromisoformat(start)
    return RawEvent(id=event_id, title=title, start=start_dt,
                    end=start_dt + timedelta(minutes=20), description=description)


def patient(name: str, surgery: str) -> PatientRecord:
    return PatientRecord(name=name, surgery_date=date.fromisoformat(surgery))


class TestMergeDescription(unittest.TestCase):
    """Test marker-delimited replacement."""

    def setUp(self):
        self.block = wrap_block("👉🏻 ilk not")
        self.other_block = wrap_block("👉🏻 ikinci not")

    def test_block_layout(self):
        lines = self.block.split("\n")
        self.assertEqual(lines[0], AUTOMATION_START_MARKER)
        self.assertEqual(lines[-2], AUTOMATION_SIGNATURE)
        self.assertEqual(lines[-1], AUTOMATION_END_MARKER)

    def test_empty_description(self):
        self.assertEqual(merge_description(None, self.block), self.block)
        self.assertEqual(merge_description("", self.block), self.block)

    def test_merge_twice_keeps_one_block(self):
        once = merge_description("Hasta notu", self.block)
        twice = merge_description(once, self.other_block)

        self.assertEqual(twice.count(AUTOMATION_START_MARKER), 1)
        self.assertEqual(twice.count(AUTOMATION_END_MARKER), 1)
        self.assertEqual(twice, "Hasta notu\n\n" + self.other_block)

    def test_merge_same_block_is_stable(self):
        once = merge_description("Hasta notu", self.block)
        self.assertEqual(merge_description(once, self.block), once)

    def test_text_around_block_preserved(self):
        existing = f"önce\n\n{self.block}\n\nsonra"
        merged = merge_description(existing, self.other_block)
        self.assertEqual(merged, f"önce\n\nsonra\n\n{self.other_block}")

    def test_indentation_outside_block_kept(self):
        note = "  - ilaç: A\n  - ilaç: B\n"
        merged = merge_description(note, self.block)

        self.assertEqual(merged, "  - ilaç: A\n  - ilaç: B\n\n" + self.block)
        self.assertEqual(merge_description(merged, self.block), merged)

    def test_every_stale_block_removed(self):
        existing = f"{self.block}\n\nnot\n\n{self.other_block}"
        merged = merge_description(existing, wrap_block("👉🏻 son not"))

        self.assertEqual(merged.count(AUTOMATION_START_MARKER), 1)
        self.assertEqual(merged.count(AUTOMATION_END_MARKER), 1)
        self.assertEqual(merged, "not\n\n" + wrap_block("👉🏻 son not"))

    def test_split(self):
        before, block, after = split_automation_block(f"a {self.block} b")
        self.assertEqual((before, block, after), ("a ", self.block, " b"))

    def test_start_marker_without_end_is_not_a_block(self):
        text = f"not\n{AUTOMATION_START_MARKER}\nyarım kalmış"
        self.assertEqual(split_automation_block(text), (text, None, ''))
        self.assertEqual(strip_automation_block(text), text)


class TestSynthesizeDescription(unittest.TestCase):

    def test_no_match_produces_nothing(self):
        context = DescriptionContext(visit_date=VISIT_DAY)
        self.assertIsNone(synthesize_description(MatchOutcome(query="Zeynep Arslan"), context))

    def test_single_without_prior_control(self):
        outcome = MatchOutcome(query="Ahmet Yilmaz", candidates=[patient("Ahmet Yılmaz", "2025-01-01")])
        text = synthesize_description(outcome, DescriptionContext(visit_date=VISIT_DAY))

        self.assertIn("👉🏻 Hastanın ameliyat tarihi: 01 Ocak 2025", text)
        self.assertIn("👉🏻 Kontrol süresi: 1 ay (1m)", text)
        self.assertIn("👉🏻 Bir önceki kontrol zamanı: Yok", text)
        self.assertTrue(text.startswith(AUTOMATION_START_MARKER))

    def test_single_with_prior_control(self):
        outcome = MatchOutcome(query="Ahmet Yilmaz", candidates=[patient("Ahmet Yılmaz", "2025-01-01")])
        prior = [event("p2", "k Ahmet Yılmaz", "2025-01-08T10:00:00"),
                 event("p1", "k Ahmet Yılmaz", "2025-01-03T10:00:00")]
        text = synthesize_description(outcome, DescriptionContext(visit_date=VISIT_DAY, prior_controls=prior))
        self.assertIn("👉🏻 Bir önceki kontrol zamanı: 08 Ocak 2025 (1w)", text)

    def test_ambiguous_lists_every_candidate(self):
        candidates = [patient("Fatma Demir", "2024-03-01"), patient("Fatma Demir", "2024-09-15")]
        outcome = MatchOutcome(query="Fatma Demir", candidates=candidates)
        text = synthesize_description(outcome, DescriptionContext(visit_date=VISIT_DAY))

        self.assertIn("1. 01 Mart 2024 - Fatma Demir", text)
        self.assertIn("2. 15 Eylül 2024 - Fatma Demir", text)
        self.assertIn(AMBIGUITY_DISCLAIMER, text)
        self.assertNotIn("Kontrol süresi", text)


class TestFindPriorControls(unittest.TestCase):

    def test_only_earlier_controls_most_recent_first(self):
        events = [
            event("a", "k Ahmet Yılmaz", "2025-01-08T10:00:00"),
            event("b", "1m ahmet yilmz", "2025-01-20T10:00:00"),
            event("c", "k1 Ahmet Yılmaz", "2025-02-01T10:00:00"),
            event("d", "k2 Ahmet Yılmaz", "2025-03-01T10:00:00"),
            event("e", "k Mehmet Demir", "2025-01-10T10:00:00"),
            event("f", "Ahmet Yılmaz muayene", "2025-01-12T10:00:00"),
        ]
        found = find_prior_controls("Ahmet Yilmaz", events, VISIT_DAY, exclude_id="c")
        self.assertEqual([e.id for e in found], ["b", "a"])


class TestDescriptionUpdateService(unittest.TestCase):
    """Test the daily update run with fake sources."""

    def setUp(self):
        self.patients = [
            patient("Ahmet Yılmaz", "2025-01-01"),
            patient("Fatma Demir", "2024-03-01"),
            patient("Fatma Demir", "2024-09-15"),
        ]
        self.events = [
            event("prev", "k Ahmet Yılmaz", "2025-01-08T10:00:00"),
            event("single", "k1 Ahmet Yilmaz", "2025-02-01T09:00:00", description="Hasta notu"),
            event("ambiguous", "1.5m Fatma Demir", "2025-02-01T09:30:00"),
            event("nomatch", "k1 Zeynep Arslan", "2025-02-01T10:00:00"),
            event("surgery", "Ameliyat Can Öz", "2025-02-01T11:00:00"),
            event("other", "Mehmet Demir muayene", "2025-02-01T12:00:00"),
            event("tomorrow", "k2 Ahmet Yılmaz", "2025-02-02T09:00:00"),
        ]

        self.calendar = Mock()
        self.calendar.supports_updates = True
        self.calendar.fetch_events.return_value = self.events

        self.patient_source = Mock()
        self.patient_source.fetch_patients.return_value = self.patients

    def _written(self):
        return {c.args[0]: c.args[1] for c in self.calendar.update_event_description.call_args_list}

    def test_run(self):
        service = DescriptionUpdateService(self.calendar, self.patient_source)
        stats = service.run(VISIT_DAY)

        self.assertEqual(stats.total_processed, 5)
        self.assertEqual(stats.skipped, 2)
        self.assertEqual(stats.single_matches, 1)
        self.assertEqual(stats.ambiguous, 1)
        self.assertEqual(stats.no_matches, 1)
        self.assertEqual(stats.updated, 2)
        self.assertAlmostEqual(stats.get_resolution_rate(), 1 / 3)

        written = self._written()
        self.assertEqual(set(written), {"single", "ambiguous"})
        self.assertTrue(written["single"].startswith("Hasta notu\n\n" + AUTOMATION_START_MARKER))
        self.assertIn("Kontrol süresi: 1 ay (1m)", written["single"])
        self.assertIn("08 Ocak 2025 (1w)", written["single"])
        self.assertIn(AMBIGUITY_DISCLAIMER, written["ambiguous"])

    def test_decisions(self):
        service = DescriptionUpdateService(self.calendar, self.patient_source)
        service.run(VISIT_DAY)

        decisions = {d.event_id: d for d in service.get_decisions()}
        self.assertEqual(decisions["single"].match_kind, MatchKind.SINGLE)
        self.assertEqual(decisions["single"].patient_names, ["Ahmet Yılmaz"])
        self.assertEqual(decisions["ambiguous"].match_kind, MatchKind.AMBIGUOUS)
        self.assertEqual(decisions["ambiguous"].patient_names, ["Fatma Demir", "Fatma Demir"])
        self.assertEqual(decisions["nomatch"].match_kind, MatchKind.NO_MATCH)
        self.assertFalse(decisions["nomatch"].changed)
        self.assertNotIn("surgery", decisions)

    def test_second_run_writes_nothing(self):
        service = DescriptionUpdateService(self.calendar, self.patient_source)
        service.run(VISIT_DAY)
        written = self._written()

        updated_events = [
            RawEvent(id=e.id, title=e.title, start=e.start, end=e.end,
                     description=written.get(e.id, e.description))
            for e in self.events
        ]
        self.calendar.fetch_events.return_value = updated_events
        self.calendar.update_event_description.reset_mock()

        stats = service.run(VISIT_DAY)
        self.assertEqual(stats.updated, 0)
        self.assertEqual(stats.unchanged, 2)
        self.calendar.update_event_description.assert_not_called()

    def test_dry_run_writes_nothing(self):
        service = DescriptionUpdateService(self.calendar, self.patient_source, dry_run=True)
        stats = service.run(VISIT_DAY)
        self.assertEqual(stats.updated, 2)
        self.calendar.update_event_description.assert_not_called()

    def test_empty_patient_list_aborts(self):
        self.patient_source.fetch_patients.return_value = []
        service = DescriptionUpdateService(self.calendar, self.patient_source)

        with self.assertRaises(UpstreamFetchError):
            service.run(VISIT_DAY)
        self.calendar.fetch_events.assert_not_called()

    def test_read_only_source_requires_dry_run(self):
        self.calendar.supports_updates = False
        with self.assertRaises(ValueError):
            DescriptionUpdateService(self.calendar, self.patient_source)


if __name__ == '__main__':
    unittest.main()
