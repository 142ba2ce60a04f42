"""
Patient list sources.

The description updater needs the known patients before it can identify
anyone. They come either from the panel's ``/api/patient-db`` endpoint or
from a CSV export with ``name,surgery_date,hospital`` columns.
"""

import csv
import logging
import os
from abc import ABC, abstractmethod
from typing import List, Optional

import requests
import urllib3
from urllib3.exceptions import InsecureRequestWarning

from ..config import DEFAULT_PANEL_URL, DEFAULT_REQUEST_TIMEOUT
from ..core.data_models import PatientRecord
from ..core.exceptions import UpstreamFetchError

PATIENT_DB_PATH = "/api/patient-db"

logger = logging.getLogger(__name__)


class PatientSource(ABC):
    """A place the known patient list can be read from."""

    @abstractmethod
    def fetch_patients(self) -> List[PatientRecord]:
        """
        Return the known patients.

        Raises:
            UpstreamFetchError: If the source cannot be read
        """


class RemotePatientSource(PatientSource):
    """Patients served by the panel application."""

    def __init__(self,
                 panel_url: str = DEFAULT_PANEL_URL,
                 timeout: float = DEFAULT_REQUEST_TIMEOUT,
                 verify_ssl: bool = True,
                 session: Optional[requests.Session] = None):
        self.url = panel_url.rstrip('/') + PATIENT_DB_PATH
        self.timeout = timeout
        self.verify_ssl = verify_ssl

        if not verify_ssl:
            urllib3.disable_warnings(InsecureRequestWarning)

        self.session = session or requests.Session()

    def fetch_patients(self) -> List[PatientRecord]:
        try:
            response = self.session.get(self.url, timeout=self.timeout, verify=self.verify_ssl)
        except requests.RequestException as e:
            raise UpstreamFetchError(f"Patient request failed: {e}", source=self.url) from e

        if response.status_code != 200:
            raise UpstreamFetchError(
                f"Patient request failed (Status: {response.status_code})",
                source=self.url, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamFetchError(f"Patient endpoint returned invalid JSON: {e}", source=self.url) from e

        # The panel wraps the list as {"patients": [...]}; a bare list is accepted too
        if isinstance(data, dict):
            data = data.get('patients')
        if not isinstance(data, list):
            raise UpstreamFetchError("Patient endpoint did not return a patient list", source=self.url)

        patients = []
        for item in data:
            try:
                patients.append(PatientRecord.from_dict(item))
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping invalid patient record: {e}")

        logger.info(f"Loaded {len(patients)} patients from {self.url}")
        return patients


class CsvPatientSource(PatientSource):
    """Patients from a CSV export."""

    def __init__(self, path: str):
        self.path = path

    def fetch_patients(self) -> List[PatientRecord]:
        if not os.path.isfile(self.path):
            raise UpstreamFetchError(f"Patient file '{self.path}' not found", source=self.path)

        logger.info(f"Loading patients from: {self.path}")
        patients = []

        try:
            with open(self.path, 'r', newline='', encoding='utf-8') as csvfile:
                reader = csv.DictReader(csvfile)

                for row in reader:
                    name = (row.get('name') or '').strip()
                    surgery_date = (row.get('surgery_date') or '').strip()
                    hospital = (row.get('hospital') or '').strip()

                    if not all([name, surgery_date]):
                        logger.warning(f"Skipping incomplete patient record: {row}")
                        continue

                    try:
                        patients.append(PatientRecord.from_dict({
                            'name': name,
                            'surgery_date': surgery_date,
                            'hospital': hospital,
                        }))
                    except ValueError as e:
                        logger.warning(f"Skipping invalid patient record: {e}")
        except OSError as e:
            raise UpstreamFetchError(f"Cannot read patient file '{self.path}': {e}", source=self.path) from e

        logger.info(f"Loaded {len(patients)} patients")
        return patients
