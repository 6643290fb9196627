"""
Swiss postal code, city and country reference data

Postal codes map to cantons by range (Swiss Post numbering areas). City and
country names are kept with their German, French, Italian and English
variants so that "Genf", "Genève" and "Geneva" resolve to the same place.

Usage:
    from pii_engine.address.swiss_postal import get_postal_db
    db = get_postal_db()
    db.get_canton("8001")        # "ZH/SH/TG/SG"
    db.canonical_city("Genf")    # "geneva"
    db.is_known_country("Schweiz")  # True
"""

from typing import Dict, List, Optional, Tuple

import regex


# ============================================================================
# Postal code ranges -> cantons
# ============================================================================

SWISS_POSTAL_RANGES: List[Tuple[int, int, str]] = [
    (1000, 1299, "VD"),
    (1300, 1399, "VD/VS"),
    (1400, 1499, "VD"),
    (1500, 1599, "FR/VD"),
    (1600, 1699, "FR/VD"),
    (1700, 1799, "FR"),
    (1800, 1899, "VD/VS"),
    (1900, 1999, "VS"),
    (2000, 2299, "NE"),
    (2300, 2499, "NE/BE"),
    (2500, 2599, "BE"),
    (2600, 2699, "BE/SO"),
    (2700, 2799, "BE/JU"),
    (2800, 2999, "JU"),
    (3000, 3999, "BE"),
    (4000, 4999, "BS/BL/SO/AG"),
    (5000, 5999, "AG/SO"),
    (6000, 6999, "LU/ZG/SZ/NW/OW/UR/TI"),
    (7000, 7999, "GR"),
    (8000, 8999, "ZH/SH/TG/SG"),
    (9000, 9999, "SG/AR/AI/TG/SH"),
]

CANTON_NAMES: Dict[str, str] = {
    "AG": "Aargau", "AI": "Appenzell Innerrhoden", "AR": "Appenzell Ausserrhoden",
    "BE": "Bern", "BL": "Basel-Landschaft", "BS": "Basel-Stadt", "FR": "Fribourg",
    "GE": "Genève", "GL": "Glarus", "GR": "Graubünden", "JU": "Jura", "LU": "Luzern",
    "NE": "Neuchâtel", "NW": "Nidwalden", "OW": "Obwalden", "SG": "St. Gallen",
    "SH": "Schaffhausen", "SO": "Solothurn", "SZ": "Schwyz", "TG": "Thurgau",
    "TI": "Ticino", "UR": "Uri", "VD": "Vaud", "VS": "Valais", "ZG": "Zug", "ZH": "Zürich",
}


# ============================================================================
# Cities and countries with multilingual variants
# ============================================================================

SWISS_CITIES: Dict[str, List[str]] = {
    "zurich": ["zürich", "zurich", "zurigo"],
    "geneva": ["genève", "geneve", "geneva", "genf", "ginevra"],
    "basel": ["basel", "bâle", "bale", "basilea"],
    "bern": ["bern", "berne", "berna"],
    "lausanne": ["lausanne", "losanna"],
    "winterthur": ["winterthur", "winterthour"],
    "lucerne": ["luzern", "lucerne", "lucerna"],
    "st_gallen": ["st. gallen", "st.gallen", "sankt gallen", "saint-gall", "san gallo"],
    "lugano": ["lugano"],
    "biel": ["biel", "bienne", "biel/bienne"],
    "thun": ["thun", "thoune"],
    "fribourg": ["fribourg", "freiburg", "friburgo"],
    "neuchatel": ["neuchâtel", "neuchatel", "neuenburg"],
    "sion": ["sion", "sitten"],
    "chur": ["chur", "coire", "coira"],
    "montreux": ["montreux"],
    "zug": ["zug", "zoug"],
}

EU_COUNTRIES: Dict[str, List[str]] = {
    "switzerland": ["switzerland", "suisse", "schweiz", "svizzera"],
    "germany": ["germany", "allemagne", "deutschland", "germania"],
    "france": ["france", "frankreich", "francia"],
    "italy": ["italy", "italie", "italien", "italia"],
    "austria": ["austria", "autriche", "österreich", "oesterreich"],
    "liechtenstein": ["liechtenstein"],
    "belgium": ["belgium", "belgique", "belgien", "belgio"],
    "netherlands": ["netherlands", "pays-bas", "niederlande", "paesi bassi"],
    "luxembourg": ["luxembourg", "luxemburg", "lussemburgo"],
}

_ACCENTS = str.maketrans({
    "ä": "a", "à": "a", "â": "a",
    "é": "e", "è": "e", "ê": "e", "ë": "e",
    "î": "i", "ï": "i", "ì": "i",
    "ö": "o", "ô": "o", "ò": "o",
    "ü": "u", "ù": "u", "û": "u",
    "ç": "c",
})


def normalize_place_name(name: str) -> str:
    """Lowercase, strip accents and collapse whitespace for name comparison."""
    folded = name.lower().replace("ß", "ss").translate(_ACCENTS)
    return " ".join(folded.split())


def _clean_postal_code(code: str) -> str:
    return regex.sub(r"^CH[-\s]?", "", code.strip().upper())


def _variant_pattern(variants: List[str]) -> "regex.Pattern":
    # Longest first so "st. gallen" wins over shorter prefixes
    ordered = sorted(variants, key=len, reverse=True)
    alternation = "|".join(regex.escape(v) for v in ordered)
    return regex.compile(rf"(?<![\w-])(?:{alternation})(?![\w-])", regex.IGNORECASE)


class SwissPostalDatabase:
    """
    Lookup for Swiss postal codes, city names and country names.

    All lookups are O(1) on normalized names except the range search, which
    walks a list of about twenty ranges.
    """

    def __init__(self):
        self._city_index: Dict[str, str] = {}
        for canonical, variants in SWISS_CITIES.items():
            for variant in variants:
                self._city_index[normalize_place_name(variant)] = canonical

        self._country_index: Dict[str, str] = {}
        for canonical, variants in EU_COUNTRIES.items():
            for variant in variants:
                self._country_index[normalize_place_name(variant)] = canonical

        self.city_pattern = _variant_pattern(
            [v for variants in SWISS_CITIES.values() for v in variants])
        self.country_pattern = _variant_pattern(
            [v for variants in EU_COUNTRIES.values() for v in variants])

    def is_valid_postal_code(self, code: str) -> bool:
        """
        Check a Swiss postal code (optional CH- prefix) against the known ranges.

        Args:
            code: Postal code text, e.g. "8001" or "CH-8001"

        Returns:
            True if the code falls in a Swiss numbering area
        """
        return self.get_canton(code) is not None

    def get_canton(self, code: str) -> Optional[str]:
        """
        Canton code(s) for a postal code, e.g. "BE" or "VD/VS".

        Returns:
            Slash-separated canton codes, or None if not a Swiss postal code
        """
        cleaned = _clean_postal_code(code)
        if not regex.fullmatch(r"\d{4}", cleaned):
            return None
        value = int(cleaned)
        for low, high, canton in SWISS_POSTAL_RANGES:
            if low <= value <= high:
                return canton
        return None

    def get_canton_names(self, code: str) -> List[str]:
        canton = self.get_canton(code)
        if canton is None:
            return []
        return [CANTON_NAMES.get(c, c) for c in canton.split("/")]

    def canonical_city(self, name: str) -> Optional[str]:
        return self._city_index.get(normalize_place_name(name))

    def is_known_city(self, name: str) -> bool:
        return normalize_place_name(name) in self._city_index

    def canonical_country(self, name: str) -> Optional[str]:
        return self._country_index.get(normalize_place_name(name))

    def is_known_country(self, name: str) -> bool:
        return normalize_place_name(name) in self._country_index


# Global instance for convenience
_postal_db: Optional[SwissPostalDatabase] = None


def get_postal_db() -> SwissPostalDatabase:
    """Get the global postal database instance."""
    global _postal_db
    if _postal_db is None:
        _postal_db = SwissPostalDatabase()
    return _postal_db
