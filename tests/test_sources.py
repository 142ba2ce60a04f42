"""
Tests for calendar and patient sources.

HTTP is faked with mock sessions; file sources use temporary files.
"""

import csv
import json
import os
import shutil
import tempfile
import unittest
from datetime import date
from pathlib import Path
from typing import List
from unittest.mock import MagicMock, Mock, patch

import requests

from surgery_registry.core.data_models import DEFAULT_EVENT_TITLE
from surgery_registry.core.exceptions import UpstreamFetchError
from surgery_registry.sources import (
    CsvPatientSource,
    GoogleCalendarSource,
    LocalSnapshotSource,
    RemotePatientSource,
    parse_events,
    probe_status,
    save_snapshot
)


def response(status_code: int = 200, payload=None, text: str = "") -> Mock:
    resp = Mock()
    resp.status_code = status_code
    resp.text = text
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload
    return resp


GOOGLE_ITEM = {
    "id": "a1",
    "summary": "k1 Ahmet Yılmaz",
    "start": {"dateTime": "2025-02-01T10:00:00+03:00"},
    "end": {"dateTime": "2025-02-01T10:20:00+03:00"},
    "colorId": "11",
    "location": "BHT",
}


class TestParseEvents(unittest.TestCase):

    def test_valid_and_malformed(self):
        items = [
            GOOGLE_ITEM,
            {"id": "bad", "summary": "k2 Ahmet", "start": {"dateTime": "2025-02-01T10:00:00Z"}},
            {"id": "worse", "start": "yarın", "end": "yarın"},
        ]
        with self.assertLogs('surgery_registry.sources.calendar_source', level='WARNING') as logs:
            events, skipped = parse_events(items)

        self.assertEqual(skipped, 2)
        self.assertEqual(len(events), 1)
        self.assertTrue(any("MALFORMED_EVENT" in line for line in logs.output))

        event = events[0]
        self.assertEqual(event.title, "k1 Ahmet Yılmaz")
        self.assertEqual(event.color_id, "11")
        self.assertEqual(event.start_date, date(2025, 2, 1))

    def test_all_day_and_untitled(self):
        events, skipped = parse_events([
            {"id": "c", "start": {"date": "2025-01-02"}, "end": {"date": "2025-01-03"}},
        ])
        self.assertEqual(skipped, 0)
        self.assertEqual(events[0].title, DEFAULT_EVENT_TITLE)
        self.assertEqual(events[0].start_date, date(2025, 1, 2))


class TestGoogleCalendarSource(unittest.TestCase):
    """Test paging, errors and write-back against a fake session."""

    def setUp(self):
        self.session = MagicMock()
        self.source = GoogleCalendarSource(
            calendar_id="clinic@group.calendar.google.com",
            access_token="tok",
            session=self.session,
        )

    def test_bearer_header(self):
        self.session.headers.update.assert_called_once()
        headers = self.session.headers.update.call_args.args[0]
        self.assertEqual(headers['Authorization'], "Bearer tok")

    def test_pages_followed(self):
        self.session.get.side_effect = [
            response(payload={
                "items": [GOOGLE_ITEM, {"id": "bad", "summary": "x"}],
                "nextPageToken": "p2",
            }),
            response(payload={
                "items": [{"id": "c", "summary": "xxx",
                           "start": {"date": "2025-01-02"}, "end": {"date": "2025-01-03"}}],
            }),
        ]

        events = self.source.fetch_events()

        self.assertEqual([e.id for e in events], ["a1", "c"])
        self.assertEqual(self.source.skipped_events, 1)
        self.assertEqual(self.session.get.call_count, 2)

        first, second = self.session.get.call_args_list
        self.assertEqual(
            first.args[0],
            "https://www.googleapis.com/calendar/v3/calendars/clinic%40group.calendar.google.com/events")
        self.assertNotIn('pageToken', first.kwargs['params'])
        self.assertEqual(first.kwargs['params']['singleEvents'], 'true')
        self.assertEqual(first.kwargs['params']['orderBy'], 'startTime')
        self.assertEqual(first.kwargs['params']['maxResults'], 2500)
        self.assertEqual(second.kwargs['params']['pageToken'], "p2")

    def test_http_error(self):
        self.session.get.return_value = response(401, text="unauthorized")
        with self.assertRaises(UpstreamFetchError) as ctx:
            self.source.fetch_events()
        self.assertEqual(ctx.exception.status_code, 401)

    def test_transport_error(self):
        self.session.get.side_effect = requests.ConnectionError("boom")
        with self.assertRaises(UpstreamFetchError):
            self.source.fetch_events()

    def test_invalid_json(self):
        self.session.get.return_value = response(payload=ValueError("not json"))
        with self.assertRaises(UpstreamFetchError):
            self.source.fetch_events()

    def test_update_event_description(self):
        self.session.patch.return_value = response(200)
        self.source.update_event_description("evt1", "yeni not")

        call = self.session.patch.call_args
        self.assertTrue(call.args[0].endswith("/events/evt1"))
        self.assertEqual(call.kwargs['json'], {'description': "yeni not"})

    def test_update_failure(self):
        self.session.patch.return_value = response(403)
        with self.assertRaises(UpstreamFetchError):
            self.source.update_event_description("evt1", "yeni not")

    def test_requires_credentials(self):
        with self.assertRaises(ValueError):
            GoogleCalendarSource(calendar_id="clinic", access_token="", session=self.session)

    @patch('surgery_registry.sources.calendar_source.urllib3.disable_warnings')
    def test_insecure_disables_warnings(self, mock_disable):
        GoogleCalendarSource(calendar_id="clinic", access_token="tok",
                             verify_ssl=False, session=MagicMock())
        mock_disable.assert_called_once()


class TempDirTestCase(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write(self, filename: str, content: str) -> str:
        filepath = Path(self.temp_dir) / filename
        filepath.write_text(content, encoding='utf-8')
        return str(filepath)


class TestLocalSnapshotSource(TempDirTestCase):

    def test_processed_shape(self):
        path = self._write("events.json", json.dumps([{
            "id": "a", "title": "k1 Ahmet Yılmaz", "color": "11",
            "start": "2025-02-01T10:00:00+03:00", "end": "2025-02-01T10:20:00+03:00",
        }], ensure_ascii=False))

        source = LocalSnapshotSource(path)
        events = source.fetch_events()

        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].color_id, "11")
        self.assertFalse(source.supports_updates)

    def test_google_envelope(self):
        path = self._write("events.json", json.dumps({"items": [GOOGLE_ITEM]}))
        self.assertEqual([e.id for e in LocalSnapshotSource(path).fetch_events()], ["a1"])

    def test_missing_and_corrupt(self):
        with self.assertRaises(UpstreamFetchError):
            LocalSnapshotSource(os.path.join(self.temp_dir, "nope.json")).fetch_events()
        with self.assertRaises(UpstreamFetchError):
            LocalSnapshotSource(self._write("bad.json", "not json{")).fetch_events()
        with self.assertRaises(UpstreamFetchError):
            LocalSnapshotSource(self._write("num.json", "42")).fetch_events()

    def test_read_only(self):
        with self.assertRaises(NotImplementedError):
            LocalSnapshotSource("x.json").update_event_description("a", "b")

    def test_saved_snapshot_reads_back(self):
        events, _ = parse_events([GOOGLE_ITEM])
        path = os.path.join(self.temp_dir, "saved.json")
        save_snapshot(events, path)

        with open(path, encoding='utf-8') as f:
            saved = json.load(f)
        self.assertEqual(saved[0]['colorHex'], '#dc2127')
        self.assertEqual(LocalSnapshotSource(path).fetch_events(), events)


class TestRemotePatientSource(unittest.TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.source = RemotePatientSource("http://panel:3005/", session=self.session)

    def test_fetch(self):
        self.session.get.return_value = response(payload={"patients": [
            {"name": "Ahmet Yılmaz", "surgeryDate": "2025-01-01", "hospital": "BHT", "controls": [
                {"date": "2025-02-01", "status": "attended", "title": "k1 Ahmet Yılmaz", "label": "1m"},
            ]},
            {"name": "", "surgeryDate": "2025-01-01"},
        ]})

        patients = self.source.fetch_patients()

        self.assertEqual(self.session.get.call_args.args[0], "http://panel:3005/api/patient-db")
        self.assertEqual(len(patients), 1)
        self.assertEqual(patients[0].surgery_date, date(2025, 1, 1))
        self.assertEqual(patients[0].controls[0].label, "1m")

    def test_bare_list(self):
        self.session.get.return_value = response(payload=[{"name": "Ayşe Kaya", "date": "2024-11-01"}])
        self.assertEqual(self.source.fetch_patients()[0].name, "Ayşe Kaya")

    def test_errors(self):
        self.session.get.return_value = response(500)
        with self.assertRaises(UpstreamFetchError) as ctx:
            self.source.fetch_patients()
        self.assertEqual(ctx.exception.status_code, 500)

        self.session.get.return_value = response(payload={"error": "db offline"})
        with self.assertRaises(UpstreamFetchError):
            self.source.fetch_patients()

        self.session.get.side_effect = requests.Timeout("slow")
        with self.assertRaises(UpstreamFetchError):
            self.source.fetch_patients()


class TestCsvPatientSource(TempDirTestCase):

    def _create_temp_csv(self, filename: str, headers: List[str], rows: List[List[str]]) -> str:
        filepath = Path(self.temp_dir) / filename
        with open(filepath, 'w', newline='', encoding='utf-8') as f:
            writer = csv.writer(f)
            writer.writerow(headers)
            writer.writerows(rows)
        return str(filepath)

    def test_load(self):
        path = self._create_temp_csv('patients.csv', ['name', 'surgery_date', 'hospital'], [
            ['Ahmet Yılmaz', '2025-01-01', 'BHT'],
            ['Ayşe Kaya', '2024-11-01', ''],
            ['', '2024-10-01', 'ICH'],
            ['Zeynep Arslan', '', 'ICH'],
            ['Can Öz', 'dün', 'ICH'],
        ])

        patients = CsvPatientSource(path).fetch_patients()

        self.assertEqual([p.name for p in patients], ['Ahmet Yılmaz', 'Ayşe Kaya'])
        self.assertEqual(patients[0].hospital, 'BHT')
        self.assertIsNone(patients[1].hospital)

    def test_missing_file(self):
        with self.assertRaises(UpstreamFetchError):
            CsvPatientSource(os.path.join(self.temp_dir, 'missing.csv')).fetch_patients()


class TestProbeStatus(unittest.TestCase):

    def test_online(self):
        session = MagicMock()
        session.get.return_value = response(payload={"version": "1.4.2"})

        status = probe_status("panel", "http://localhost:3005/", timeout=3, session=session)

        session.get.assert_called_once_with("http://localhost:3005/api/version", timeout=3)
        self.assertTrue(status.online)
        self.assertEqual(status.version, "1.4.2")
        self.assertEqual(status.to_dict()['status'], 'online')

    def test_offline_never_raises(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectTimeout("timed out")

        status = probe_status("panel", "http://localhost:3005", session=session)

        self.assertFalse(status.online)
        self.assertIn("timed out", status.error)

    def test_unhealthy(self):
        session = MagicMock()
        session.get.return_value = response(503, payload=ValueError("html"))

        status = probe_status("panel", "http://localhost:3005", session=session)

        self.assertFalse(status.online)
        self.assertEqual(status.status_code, 503)
        self.assertIsNone(status.version)


if __name__ == '__main__':
    unittest.main()
