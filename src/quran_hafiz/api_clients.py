"""
API client for the AlQuran Cloud text service.
"""

import requests
import logging
from typing import Dict, List, Optional
from dataclasses import dataclass, field, replace
from urllib.parse import urljoin

from .config import ServiceSettings
from .text_normalization import normalize, strip_quranic_marks

BASMALAH = "بِسْمِ ٱللَّهِ ٱلرَّحْمَٰنِ ٱلرَّحِيمِ"
_NORMALIZED_BASMALAH = normalize(BASMALAH).split()


class QuranAPIError(Exception):
    """Raised when the text service cannot be reached or returns an unusable response."""


@dataclass
class SurahInfo:
    """Surah metadata from the surah list."""
    number: int
    name: str
    english_name: str
    english_name_translation: str
    number_of_ayahs: int
    revelation_type: str


@dataclass
class Ayah:
    """One ayah of a surah."""
    number: int
    text: str
    number_in_surah: int
    juz: Optional[int] = None
    page: Optional[int] = None


@dataclass
class SurahDetail:
    """A surah with its ayahs."""
    number: int
    name: str
    english_name: str
    english_name_translation: str
    revelation_type: str
    number_of_ayahs: int
    ayahs: List[Ayah] = field(default_factory=list)


@dataclass
class Passage:
    """Reference passage ready for alignment: one segment (list of words) per ayah."""
    surah_number: int
    ayah_numbers: List[int]
    segments: List[List[str]]

    @property
    def segment_count(self) -> int:
        return len(self.segments)


class AlQuranAPIClient:
    """Client for AlQuran Cloud API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        edition: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        settings = ServiceSettings.from_env()
        self.base_url = base_url or settings.alquran_base_url
        self.edition = edition or settings.alquran_edition
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.session = session or requests.Session()
        self.logger = logging.getLogger(__name__)

    def get_surah_list(self) -> List[SurahInfo]:
        """Get metadata for all 114 surahs."""
        data = self._make_request("surah")
        try:
            return [
                SurahInfo(
                    number=item["number"],
                    name=item["name"],
                    english_name=item["englishName"],
                    english_name_translation=item["englishNameTranslation"],
                    number_of_ayahs=item["numberOfAyahs"],
                    revelation_type=item["revelationType"],
                )
                for item in data
            ]
        except (KeyError, TypeError) as e:
            self.logger.error(f"Unexpected surah list format: {e}")
            raise QuranAPIError(f"Unexpected surah list format: {e}")

    def get_surah_detail(self, surah_number: int) -> SurahDetail:
        """
        Get a surah with all of its ayahs.

        Args:
            surah_number: Surah number (1-114)

        Returns:
            SurahDetail with ayah texts exactly as served
        """
        if not 1 <= surah_number <= 114:
            raise ValueError(f"Surah number must be between 1 and 114, got {surah_number}")

        data = self._make_request(f"surah/{surah_number}/{self.edition}")
        try:
            ayahs = [
                Ayah(
                    number=item["number"],
                    text=item["text"],
                    number_in_surah=item["numberInSurah"],
                    juz=item.get("juz"),
                    page=item.get("page"),
                )
                for item in data["ayahs"]
            ]
            return SurahDetail(
                number=data["number"],
                name=data["name"],
                english_name=data["englishName"],
                english_name_translation=data["englishNameTranslation"],
                revelation_type=data["revelationType"],
                number_of_ayahs=data["numberOfAyahs"],
                ayahs=ayahs,
            )
        except (KeyError, TypeError) as e:
            self.logger.error(f"Unexpected surah detail format for surah {surah_number}: {e}")
            raise QuranAPIError(f"Unexpected surah detail format: {e}")

    def get_passage(self, surah_number: int, start_ayah: int = 1, end_ayah: Optional[int] = None) -> Passage:
        """
        Get a cleaned range of ayahs for recitation.

        Args:
            surah_number: Surah number (1-114)
            start_ayah: First ayah (1-based, inclusive)
            end_ayah: Last ayah (inclusive); the end of the surah if None

        Returns:
            Passage with one word list per ayah
        """
        detail = self.get_surah_detail(surah_number)
        last = end_ayah if end_ayah is not None else detail.number_of_ayahs
        if start_ayah < 1 or last > detail.number_of_ayahs or start_ayah > last:
            raise ValueError(
                f"Ayah range {start_ayah}-{last} is outside surah {surah_number} "
                f"({detail.number_of_ayahs} ayahs)"
            )

        ayah_numbers = []
        segments = []
        for ayah in detail.ayahs:
            if start_ayah <= ayah.number_in_surah <= last:
                ayah_numbers.append(ayah.number_in_surah)
                segments.append(self._clean_ayah_words(surah_number, ayah))

        self.logger.info(f"Loaded surah {surah_number} ayahs {start_ayah}-{last}: {sum(len(s) for s in segments)} words")
        return Passage(surah_number=surah_number, ayah_numbers=ayah_numbers, segments=segments)

    def get_recitation_ayahs(self, surah_number: int) -> List[Ayah]:
        """Get every ayah of a surah with its text cleaned the same way as passages."""
        detail = self.get_surah_detail(surah_number)
        return [
            replace(ayah, text=" ".join(self._clean_ayah_words(surah_number, ayah)))
            for ayah in detail.ayahs
        ]

    def _clean_ayah_words(self, surah_number: int, ayah: Ayah) -> List[str]:
        """
        Cleans one ayah for recitation:
        1. Removes the Basmalah the service prepends to verse 1 (except Al-Fatiha, where it is the verse).
        2. Removes Quranic stop marks and drops words that consisted of marks only.
        """
        words = ayah.text.split()

        if surah_number > 1 and ayah.number_in_surah == 1:
            head = [normalize(w) for w in words[:len(_NORMALIZED_BASMALAH)]]
            if len(words) > len(_NORMALIZED_BASMALAH) and head == _NORMALIZED_BASMALAH:
                self.logger.debug(f"Removing Basmalah from surah {surah_number} ayah 1")
                words = words[len(_NORMALIZED_BASMALAH):]

        clean_words = []
        for word in words:
            cleaned_word = strip_quranic_marks(word)
            if cleaned_word:
                clean_words.append(cleaned_word)
        return clean_words

    def _make_request(self, endpoint: str):
        """Make a request to the AlQuran API and return the ``data`` payload."""
        url = urljoin(self.base_url, endpoint)
        self.logger.debug(f"Making request to: {url}")

        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            payload: Dict = response.json()
        except requests.RequestException as e:
            self.logger.error(f"Network error accessing AlQuran API: {e}")
            raise QuranAPIError(f"Failed to fetch {endpoint}: {e}")
        except ValueError as e:
            self.logger.error(f"AlQuran API returned invalid JSON for {endpoint}: {e}")
            raise QuranAPIError(f"Invalid response for {endpoint}: {e}")

        if payload.get("code") != 200:
            raise QuranAPIError(f"API Error: {payload.get('status', 'Unknown error')}")
        return payload["data"]
